"""Small time and serialization helpers shared across the pipeline."""

import json
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

# Clock returning epoch milliseconds; injectable so tests can control time
Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_iso(value: Optional[int]) -> Optional[str]:
    """Render an epoch-millisecond timestamp as an ISO-8601 UTC string."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


def iso_to_ms(value: str) -> int:
    """Parse an ISO-8601 timestamp into epoch milliseconds."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def ensure_json_serializable(value: Any) -> None:
    """Raise TypeError if ``value`` cannot be encoded as JSON."""
    try:
        json.dumps(value)
    except (TypeError, ValueError) as e:
        raise TypeError(f"Value is not JSON serializable: {e}") from e
