from datetime import datetime, timedelta, timezone

import pytest

from cfnflux.utils.time import format_duration, parse_duration, timestamp


@pytest.mark.parametrize(
    "value,expected",
    [
        ("30s", timedelta(seconds=30)),
        ("5m", timedelta(minutes=5)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1m30s", timedelta(seconds=90)),
        ("1.5h", timedelta(minutes=90)),
        ("250ms", timedelta(milliseconds=250)),
        ("-5s", timedelta(seconds=-5)),
        ("0", timedelta(0)),
        (" 10m ", timedelta(minutes=10)),
        (12, timedelta(seconds=12)),
        (timedelta(hours=1), timedelta(hours=1)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "5", "abc", "5x", "1h foo", "m5", "h"])
def test_parse_invalid_duration(value):
    with pytest.raises(ValueError):
        parse_duration(value)


@pytest.mark.parametrize(
    "duration,expected",
    [
        (timedelta(0), "0s"),
        (timedelta(milliseconds=250), "250ms"),
        (timedelta(seconds=1.5), "1.5s"),
        (timedelta(seconds=30), "30s"),
        (timedelta(minutes=10), "10m0s"),
        (timedelta(hours=1, minutes=2, seconds=3), "1h2m3s"),
        (timedelta(hours=2), "2h0m0s"),
        (timedelta(seconds=-30), "-30s"),
    ],
)
def test_format_duration(duration, expected):
    assert format_duration(duration) == expected


def test_timestamp():
    value = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert timestamp(value) == "2024-01-02T03:04:05Z"

    value = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone(timedelta(hours=2)))
    assert timestamp(value) == "2024-01-02T01:04:05Z"

    assert timestamp().endswith("Z")
