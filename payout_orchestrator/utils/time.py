"""Time utilities (UTC now, epoch millis, naive-datetime normalization)."""
from __future__ import annotations
import time as _time
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def epoch_millis() -> int:
    return int(_time.time() * 1000)

def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on round-trip; treat naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

__all__ = ["utc_now", "epoch_millis", "as_utc"]
