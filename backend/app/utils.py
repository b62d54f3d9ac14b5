from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Make a naive datetime timezone-aware (UTC). Already-aware datetimes pass through.

    The Mongo client is tz_aware, so stored dates already come back in UTC.
    This covers naive values from other sources, such as fixtures or
    datetimes built by callers, before they are formatted or compared.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def filename_stamp(dt: datetime) -> str:
    """ISO-8601 timestamp at seconds precision, safe for filenames.

    2026-10-19T17:28:05 -> 2026-10-19T17-28-05
    """
    return ensure_utc(dt).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S").replace(":", "-")
