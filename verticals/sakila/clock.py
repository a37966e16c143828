"""Timestamp helpers.

The ledger stores UTC. Some backends (SQLite) hand timestamps back without
tzinfo, so values read from the database pass through as_utc() before any
arithmetic against utcnow().
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
