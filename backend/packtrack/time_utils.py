# Overview: UTC clock helpers shared by models, services and the evidence store.

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores this form."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_millis() -> int:
    """Milliseconds since the epoch, used to name stored video files."""
    return int(time.time() * 1000)


def day_folder(moment: Optional[datetime] = None) -> str:
    """YYYY-MM-DD bucket name for evidence files."""
    return (moment or utcnow()).strftime("%Y-%m-%d")


def to_utc_z(value: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a 'Z' suffix; naive input counts as UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"
