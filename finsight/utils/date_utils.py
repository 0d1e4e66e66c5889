"""Date manipulation utilities"""

import math
from datetime import datetime, timedelta, timezone
from typing import Tuple

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def utc_now() -> datetime:
    """Current time as a naive UTC datetime, the form every engine window uses"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(moment: datetime) -> datetime:
    """Convert an offset-aware datetime to naive UTC; naive values pass through"""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp (including a trailing `Z`) into naive UTC"""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(value))


def days_ago(now: datetime, days: int) -> datetime:
    return now - timedelta(days=days)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days from earlier to later, rounded up (negative when later is in the past)"""
    return math.ceil((later - earlier).total_seconds() / 86400)


def month_key(moment: datetime) -> Tuple[int, int]:
    return moment.year, moment.month


def iso_week_key(moment: datetime) -> Tuple[int, int]:
    iso = moment.isocalendar()
    return iso[0], iso[1]


def add_months(year: int, month: int, offset: int) -> Tuple[int, int]:
    """Shift a (year, month) pair by offset calendar months"""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def months_ago(now: datetime, months: int) -> datetime:
    """Same day-of-month `months` calendar months back, clamped to the 28th"""
    year, month = add_months(now.year, now.month, -months)
    return now.replace(year=year, month=month, day=min(now.day, 28))


def is_weekend(moment: datetime) -> bool:
    return moment.weekday() >= 5
