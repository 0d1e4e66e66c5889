"""Unit tests for date helpers"""

from datetime import datetime, timedelta, timezone

import pytest

from finsight.utils.date_utils import add_months, months_ago, parse_timestamp, to_naive_utc, utc_now


@pytest.mark.parametrize(
    "value",
    [
        "2024-06-14T12:00:00.000Z",
        "2024-06-14T12:00:00Z",
        "2024-06-14T12:00:00+00:00",
        "2024-06-14T14:00:00+02:00",
        "2024-06-14T12:00:00",
    ],
)
def test_parse_timestamp_returns_naive_utc(value):
    assert parse_timestamp(value) == datetime(2024, 6, 14, 12, 0)


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_to_naive_utc():
    haiti = timezone(timedelta(hours=-4))
    assert to_naive_utc(datetime(2024, 6, 14, 8, 0, tzinfo=haiti)) == datetime(2024, 6, 14, 12, 0)
    naive = datetime(2024, 6, 14, 8, 0)
    assert to_naive_utc(naive) is naive


def test_utc_now_is_naive():
    assert utc_now().tzinfo is None


def test_month_arithmetic():
    assert add_months(2024, 1, -1) == (2023, 12)
    assert add_months(2023, 11, 3) == (2024, 2)
    assert months_ago(datetime(2024, 3, 31, 9), 1) == datetime(2024, 2, 28, 9)
