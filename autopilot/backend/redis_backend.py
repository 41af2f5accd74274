"""Redis-backed stores.

Key layout (all keys carry the configured prefix):

- ``{prefix}:job:{id}``          hash: ``data`` (job JSON) plus the fields the
                                  claim script mutates (state, timestamps)
- ``{prefix}:{queue}:waiting``   zset scored by priority then sequence
- ``{prefix}:{queue}:delayed``   zset scored by ``delay_until``
- ``{prefix}:{queue}:active``    set of claimed ids
- ``{prefix}:{queue}:completed`` / ``failed``  lists, newest first
- ``{prefix}:{queue}:paused``    flag
- ``{prefix}:sequence``          admission counter
"""

import asyncio
import json
from contextlib import contextmanager
from typing import List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from autopilot.backend.abstract import (
    AbstractJobStore,
    AbstractMonitoringStore,
    JobNotFoundError,
    StoreUnavailableError,
)
from autopilot.backend.models import (
    Alert,
    HealthSummary,
    Job,
    JobState,
    ProbeMetrics,
    QueueCounts,
    TestResult,
)
from autopilot.lib.logger import configure_logger

logger = configure_logger(__name__)

MAX_STACKTRACE_ENTRIES = 10

# Sequence numbers stay below this, so priority dominates the waiting score
PRIORITY_SCALE = 10**12

# KEYS: waiting, delayed, active, paused
# ARGV: now, job key prefix
CLAIM_SCRIPT = """
if redis.call('EXISTS', KEYS[4]) == 1 then
  return false
end
local due = redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', ARGV[1])
for _, id in ipairs(due) do
  local key = ARGV[2] .. id
  redis.call('ZREM', KEYS[2], id)
  local score = redis.call('HGET', key, 'score')
  if score then
    redis.call('ZADD', KEYS[1], score, id)
    redis.call('HSET', key, 'state', 'waiting')
  end
end
local head = redis.call('ZRANGE', KEYS[1], 0, 0)
if #head == 0 then
  return false
end
local id = head[1]
redis.call('ZREM', KEYS[1], id)
redis.call('SADD', KEYS[3], id)
redis.call('HSET', ARGV[2] .. id, 'state', 'active', 'processed_at', ARGV[1], 'heartbeat_at', ARGV[1])
return id
"""


@contextmanager
def _unavailable_on_error(operation: str):
    try:
        yield
    except RedisError as e:
        logger.error(
            f"Store operation failed: {operation}",
            extra={"error": str(e), "event_type": "store_error"},
        )
        raise StoreUnavailableError(f"{operation}: {e}") from e


async def connect_redis(
    url: str,
    retries: int = 10,
    backoff_ms: int = 100,
    max_backoff_ms: int = 3000,
    socket_timeout: float = 5.0,
) -> aioredis.Redis:
    """Open a client and wait until the server answers ``PING``.

    Connection attempts back off exponentially; after ``retries`` failures
    StoreUnavailableError is raised.
    """
    client = aioredis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=socket_timeout,
        socket_timeout=socket_timeout,
        retry_on_timeout=True,
    )
    last_error: Optional[Exception] = None
    for attempt in range(1, retries + 1):
        try:
            await client.ping()
            logger.info(
                "Connected to Redis",
                extra={"attempt": attempt, "event_type": "store_connected"},
            )
            return client
        except RedisError as e:
            last_error = e
            delay_ms = min(backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
            logger.warning(
                f"Redis connection attempt {attempt}/{retries} failed",
                extra={
                    "error": str(e),
                    "retry_in_ms": delay_ms,
                    "event_type": "store_connect_retry",
                },
            )
            if attempt < retries:
                await asyncio.sleep(delay_ms / 1000)
    await client.aclose()
    raise StoreUnavailableError(f"Redis unreachable at {url}: {last_error}")


class RedisJobStore(AbstractJobStore):
    def __init__(
        self,
        client: aioredis.Redis,
        prefix: str = "autopilot",
        keep_completed: int = 50,
        keep_failed: int = 20,
    ):
        self.client = client
        self.prefix = prefix
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed
        self._claim = client.register_script(CLAIM_SCRIPT)

    def _job_key(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def _queue_key(self, queue_name: str, bucket: str) -> str:
        return f"{self.prefix}:{queue_name}:{bucket}"

    @staticmethod
    def _score(job: Job) -> int:
        return job.priority * PRIORITY_SCALE + job.sequence

    def _fields(self, job: Job) -> dict:
        return {
            "data": job.model_dump_json(),
            "score": self._score(job),
            "state": job.state.value,
            "processed_at": "" if job.processed_at is None else job.processed_at,
            "heartbeat_at": "" if job.heartbeat_at is None else job.heartbeat_at,
        }

    @staticmethod
    def _decode(fields: dict) -> Optional[Job]:
        if not fields or "data" not in fields:
            return None
        job = Job.model_validate_json(fields["data"])
        # Fields written by the claim script win over the JSON snapshot
        job.state = JobState(fields.get("state", job.state.value))
        if fields.get("processed_at"):
            job.processed_at = int(fields["processed_at"])
        if fields.get("heartbeat_at"):
            job.heartbeat_at = int(fields["heartbeat_at"])
        return job

    async def _load(self, job_id: str) -> Optional[Job]:
        return self._decode(await self.client.hgetall(self._job_key(job_id)))

    async def _require(self, job_id: str) -> Job:
        job = await self._load(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def next_sequence(self) -> int:
        with _unavailable_on_error("next_sequence"):
            return int(await self.client.incr(f"{self.prefix}:sequence"))

    async def add(self, job: Job) -> Job:
        with _unavailable_on_error("add"):
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(self._job_key(job.id), mapping=self._fields(job))
                if job.state == JobState.DELAYED:
                    pipe.zadd(
                        self._queue_key(job.queue_name, "delayed"),
                        {job.id: job.delay_until or 0},
                    )
                else:
                    pipe.zadd(
                        self._queue_key(job.queue_name, "waiting"),
                        {job.id: self._score(job)},
                    )
                await pipe.execute()
        return job

    async def claim_next(self, queue_name: str, now: int) -> Optional[Job]:
        with _unavailable_on_error("claim_next"):
            job_id = await self._claim(
                keys=[
                    self._queue_key(queue_name, "waiting"),
                    self._queue_key(queue_name, "delayed"),
                    self._queue_key(queue_name, "active"),
                    self._queue_key(queue_name, "paused"),
                ],
                args=[now, f"{self.prefix}:job:"],
            )
            if not job_id:
                return None
            return await self._load(job_id)

    async def _write(self, job: Job) -> None:
        await self.client.hset(self._job_key(job.id), mapping=self._fields(job))

    async def update_progress(self, job_id: str, progress: int, now: int) -> Job:
        with _unavailable_on_error("update_progress"):
            job = await self._require(job_id)
            job.progress = progress
            job.heartbeat_at = now
            await self._write(job)
            return job

    async def touch(self, job_id: str, now: int) -> None:
        with _unavailable_on_error("touch"):
            state = await self.client.hget(self._job_key(job_id), "state")
            if state is None:
                raise JobNotFoundError(job_id)
            if state == JobState.ACTIVE.value:
                await self.client.hset(self._job_key(job_id), "heartbeat_at", now)

    async def _finish(self, job: Job, bucket: str, keep: int) -> None:
        list_key = self._queue_key(job.queue_name, bucket)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.srem(self._queue_key(job.queue_name, "active"), job.id)
            pipe.hset(self._job_key(job.id), mapping=self._fields(job))
            pipe.lpush(list_key, job.id)
            pipe.lrange(list_key, keep, -1)
            pipe.ltrim(list_key, 0, keep - 1)
            results = await pipe.execute()
        pruned = results[3]
        if pruned:
            await self.client.delete(*[self._job_key(job_id) for job_id in pruned])

    async def complete(self, job_id: str, result, now: int) -> Job:
        with _unavailable_on_error("complete"):
            job = await self._require(job_id)
            job.state = JobState.COMPLETED
            job.result = result
            job.progress = 100
            job.finished_at = now
            await self._finish(job, "completed", self.keep_completed)
            return job

    async def retry(
        self, job_id: str, error: str, attempts: int, delay_until: Optional[int], now: int
    ) -> Job:
        with _unavailable_on_error("retry"):
            job = await self._require(job_id)
            job.attempts = attempts
            job.error = error
            job.stacktrace = (job.stacktrace + [error])[-MAX_STACKTRACE_ENTRIES:]
            job.heartbeat_at = None
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.srem(self._queue_key(job.queue_name, "active"), job.id)
                if delay_until is not None and delay_until > now:
                    job.state = JobState.DELAYED
                    job.delay_until = delay_until
                    pipe.zadd(
                        self._queue_key(job.queue_name, "delayed"), {job.id: delay_until}
                    )
                else:
                    job.state = JobState.WAITING
                    pipe.zadd(
                        self._queue_key(job.queue_name, "waiting"),
                        {job.id: self._score(job)},
                    )
                pipe.hset(self._job_key(job.id), mapping=self._fields(job))
                await pipe.execute()
            return job

    async def fail(self, job_id: str, error: str, attempts: int, now: int) -> Job:
        with _unavailable_on_error("fail"):
            job = await self._require(job_id)
            job.attempts = attempts
            job.error = error
            job.stacktrace = (job.stacktrace + [error])[-MAX_STACKTRACE_ENTRIES:]
            job.state = JobState.FAILED
            job.finished_at = now
            await self._finish(job, "failed", self.keep_failed)
            return job

    async def get(self, job_id: str) -> Optional[Job]:
        with _unavailable_on_error("get"):
            return await self._load(job_id)

    async def counts(self, queue_name: str) -> QueueCounts:
        with _unavailable_on_error("counts"):
            async with self.client.pipeline(transaction=False) as pipe:
                pipe.zcard(self._queue_key(queue_name, "waiting"))
                pipe.scard(self._queue_key(queue_name, "active"))
                pipe.llen(self._queue_key(queue_name, "completed"))
                pipe.llen(self._queue_key(queue_name, "failed"))
                pipe.zcard(self._queue_key(queue_name, "delayed"))
                pipe.exists(self._queue_key(queue_name, "paused"))
                waiting, active, completed, failed, delayed, paused = await pipe.execute()
            return QueueCounts(
                waiting=waiting,
                active=active,
                completed=completed,
                failed=failed,
                delayed=delayed,
                paused=bool(paused),
            )

    async def _load_many(self, job_ids: List[str]) -> List[Job]:
        if not job_ids:
            return []
        async with self.client.pipeline(transaction=False) as pipe:
            for job_id in job_ids:
                pipe.hgetall(self._job_key(job_id))
            rows = await pipe.execute()
        return [job for job in (self._decode(row) for row in rows) if job is not None]

    async def list_jobs(
        self, queue_name: str, state: JobState, limit: int = 50
    ) -> List[Job]:
        with _unavailable_on_error("list_jobs"):
            key = self._queue_key(queue_name, state.value)
            if state in (JobState.WAITING, JobState.DELAYED):
                job_ids = await self.client.zrange(key, 0, limit - 1)
            elif state == JobState.ACTIVE:
                job_ids = list(await self.client.smembers(key))[:limit]
            else:
                job_ids = await self.client.lrange(key, 0, limit - 1)
            return await self._load_many(job_ids)

    async def list_active(self, queue_name: str) -> List[Job]:
        with _unavailable_on_error("list_active"):
            job_ids = await self.client.smembers(self._queue_key(queue_name, "active"))
            return await self._load_many(list(job_ids))

    async def pause(self, queue_name: str) -> None:
        with _unavailable_on_error("pause"):
            await self.client.set(self._queue_key(queue_name, "paused"), 1)

    async def resume(self, queue_name: str) -> None:
        with _unavailable_on_error("resume"):
            await self.client.delete(self._queue_key(queue_name, "paused"))

    async def is_paused(self, queue_name: str) -> bool:
        with _unavailable_on_error("is_paused"):
            return bool(await self.client.exists(self._queue_key(queue_name, "paused")))

    async def clean(
        self, queue_name: str, state: JobState, grace_ms: int, now: int
    ) -> List[str]:
        if not state.is_terminal:
            raise ValueError(f"Only terminal jobs can be cleaned, got {state}")
        with _unavailable_on_error("clean"):
            list_key = self._queue_key(queue_name, state.value)
            job_ids = await self.client.lrange(list_key, 0, -1)
            jobs = await self._load_many(job_ids)
            cutoff = now - grace_ms
            removed = [job.id for job in jobs if (job.finished_at or 0) < cutoff]
            if removed:
                async with self.client.pipeline(transaction=True) as pipe:
                    for job_id in removed:
                        pipe.lrem(list_key, 0, job_id)
                        pipe.delete(self._job_key(job_id))
                    await pipe.execute()
            return removed

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis job store closed", extra={"event_type": "store_closed"})


class RedisMonitoringStore(AbstractMonitoringStore):
    def __init__(
        self,
        client: aioredis.Redis,
        prefix: str = "autopilot",
        max_results: int = 100,
        max_alerts: int = 50,
        result_ttl_seconds: int = 7 * 24 * 60 * 60,
        alert_ttl_seconds: int = 24 * 60 * 60,
        metrics_ttl_seconds: int = 30 * 24 * 60 * 60,
        summary_ttl_seconds: int = 24 * 60 * 60,
    ):
        self.client = client
        self.prefix = prefix
        self.max_results = max_results
        self.max_alerts = max_alerts
        self.result_ttl_seconds = result_ttl_seconds
        self.alert_ttl_seconds = alert_ttl_seconds
        self.metrics_ttl_seconds = metrics_ttl_seconds
        self.summary_ttl_seconds = summary_ttl_seconds

    def _key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    async def _push_bounded(
        self, list_name: str, item_key: str, payload: str, ttl: int, cap: int
    ) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.setex(item_key, ttl, payload)
            pipe.lpush(self._key(list_name), item_key)
            pipe.ltrim(self._key(list_name), 0, cap - 1)
            await pipe.execute()

    async def _read_list(self, list_name: str, limit: int) -> List[str]:
        item_keys = await self.client.lrange(self._key(list_name), 0, limit - 1)
        if not item_keys:
            return []
        # Expired entries come back as None
        return [raw for raw in await self.client.mget(item_keys) if raw]

    async def save_test_result(self, result: TestResult) -> None:
        with _unavailable_on_error("save_test_result"):
            await self._push_bounded(
                "recent_test_results",
                self._key(f"test_result:{result.test_id}"),
                result.model_dump_json(),
                self.result_ttl_seconds,
                self.max_results,
            )

    async def recent_test_results(self, limit: int = 10) -> List[TestResult]:
        with _unavailable_on_error("recent_test_results"):
            rows = await self._read_list("recent_test_results", limit)
            return [TestResult.model_validate_json(row) for row in rows]

    async def save_alert(self, alert: Alert) -> None:
        with _unavailable_on_error("save_alert"):
            await self._push_bounded(
                "recent_alerts",
                self._key(f"alert:{alert.id}"),
                alert.model_dump_json(),
                self.alert_ttl_seconds,
                self.max_alerts,
            )

    async def recent_alerts(self, limit: int = 10) -> List[Alert]:
        with _unavailable_on_error("recent_alerts"):
            rows = await self._read_list("recent_alerts", limit)
            return [Alert.model_validate_json(row) for row in rows]

    async def load_metrics(self) -> Optional[ProbeMetrics]:
        with _unavailable_on_error("load_metrics"):
            raw = await self.client.get(self._key("test_metrics"))
            return ProbeMetrics.model_validate(json.loads(raw)) if raw else None

    async def save_metrics(self, metrics: ProbeMetrics) -> None:
        with _unavailable_on_error("save_metrics"):
            await self.client.setex(
                self._key("test_metrics"),
                self.metrics_ttl_seconds,
                metrics.model_dump_json(),
            )

    async def save_health_summary(self, summary: HealthSummary) -> None:
        with _unavailable_on_error("save_health_summary"):
            await self.client.setex(
                self._key("latest_health_summary"),
                self.summary_ttl_seconds,
                summary.model_dump_json(),
            )

    async def latest_health_summary(self) -> Optional[HealthSummary]:
        with _unavailable_on_error("latest_health_summary"):
            raw = await self.client.get(self._key("latest_health_summary"))
            return HealthSummary.model_validate_json(raw) if raw else None

    async def close(self) -> None:
        await self.client.aclose()
