from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC "now". Every timestamp column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
