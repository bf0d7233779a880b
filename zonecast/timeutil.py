from datetime import datetime, timezone


def utcnow() -> datetime:
    # Naive UTC, matching what SQLite hands back for DateTime columns.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
