"""Helpers shared by the schema modules."""
from datetime import datetime, timezone
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Interpret naive datetimes (e.g. read back from SQLite) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4()}"
