from __future__ import annotations

import time
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def from_epoch_ms(value: int | float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def format_http_date(epoch_ms: int | float) -> str:
    return format_datetime(from_epoch_ms(epoch_ms), usegmt=True)


def parse_http_date(value: str | None) -> int | None:
    """Parse an HTTP date header into epoch milliseconds, or ``None`` if invalid."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
