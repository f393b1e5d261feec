# shopcore/utils/timeutil.py
from datetime import datetime, timezone, timedelta

#fixed width so lexical order == time order
ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def utc_now_iso() -> str:
    return to_iso(utc_now())


def iso_after(seconds: int, start: datetime | None = None) -> str:
    return to_iso((start or utc_now()) + timedelta(seconds=seconds))


def parse_iso(value: str) -> datetime:
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)
