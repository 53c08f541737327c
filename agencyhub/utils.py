"""Small helpers shared by the sync modules."""

import uuid
from datetime import datetime, timezone


def new_id() -> str:
    """Opaque id assigned by the sync layer, never by the database."""
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def month_key(when: datetime = None) -> str:
    """YYYYMM for the given date (default: today)."""
    when = when or datetime.now()
    return f"{when.year}{when.month:02d}"


def month_name(key: str) -> str:
    """'202603' → '03/2026'. Anything malformed is returned as-is."""
    if not key or len(key) != 6:
        return key
    return f"{key[4:6]}/{key[0:4]}"


def timestamp_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)
