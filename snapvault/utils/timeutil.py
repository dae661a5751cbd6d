"""UTC time helpers. Datetimes are naive and always in UTC."""

from datetime import datetime, timezone


EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_timestamp(moment: datetime) -> float:
    """Convert a naive UTC datetime to POSIX seconds."""
    return moment.replace(tzinfo=timezone.utc).timestamp()


def from_timestamp(seconds: float) -> datetime:
    """Convert POSIX seconds to a naive UTC datetime."""
    return datetime.fromtimestamp(seconds, timezone.utc).replace(tzinfo=None)
