from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC now; every DateTime column stores naive UTC values."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() + 'Z' if dt.tzinfo is None else dt.isoformat()


def parse_datetime(raw: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 date/datetime into naive UTC. Raises ValueError."""
    if raw is None or raw == '':
        return None
    dt = datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
