# certledger/utils.py
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime = None) -> str:
    """ISO-8601 UTC with millisecond precision and a 'Z' suffix, e.g. 2025-01-01T10:00:00.000Z"""
    moment = (moment or utc_now()).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
