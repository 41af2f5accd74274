from typing import Tuple

from autopilot.backend.abstract import AbstractJobStore, AbstractMonitoringStore
from autopilot.backend.memory import MemoryJobStore, MemoryMonitoringStore
from autopilot.backend.redis_backend import (
    RedisJobStore,
    RedisMonitoringStore,
    connect_redis,
)
from autopilot.config import Config
from autopilot.lib.logger import configure_logger

logger = configure_logger(__name__)


async def create_stores(
    config: Config,
) -> Tuple[AbstractJobStore, AbstractMonitoringStore]:
    """Build the job store and monitoring store selected by configuration."""
    store_config = config.store
    prober_config = config.prober
    retention = dict(
        max_results=prober_config.max_recent_results,
        max_alerts=prober_config.max_recent_alerts,
        result_ttl_seconds=prober_config.result_ttl_seconds,
        alert_ttl_seconds=prober_config.alert_ttl_seconds,
        metrics_ttl_seconds=prober_config.metrics_ttl_seconds,
        summary_ttl_seconds=prober_config.summary_ttl_seconds,
    )

    if store_config.backend == "redis":
        connect_kwargs = dict(
            retries=store_config.connect_retries,
            backoff_ms=store_config.connect_backoff_ms,
            max_backoff_ms=store_config.connect_max_backoff_ms,
            socket_timeout=store_config.socket_timeout_seconds,
        )
        job_client = await connect_redis(store_config.redis_url, **connect_kwargs)
        monitoring_client = await connect_redis(
            store_config.redis_url, **connect_kwargs
        )
        logger.info(
            "Using Redis stores",
            extra={"prefix": store_config.key_prefix, "event_type": "store_selected"},
        )
        return (
            RedisJobStore(
                job_client,
                prefix=store_config.key_prefix,
                keep_completed=config.queues.keep_completed,
                keep_failed=config.queues.keep_failed,
            ),
            RedisMonitoringStore(
                monitoring_client, prefix=store_config.key_prefix, **retention
            ),
        )

    logger.info("Using in-memory stores", extra={"event_type": "store_selected"})
    return (
        MemoryJobStore(
            keep_completed=config.queues.keep_completed,
            keep_failed=config.queues.keep_failed,
        ),
        MemoryMonitoringStore(**retention),
    )
