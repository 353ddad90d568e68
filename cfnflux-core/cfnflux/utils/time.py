import re
import time
from datetime import datetime, timedelta, timezone
from typing import Union

TIMESTAMP_FORMAT_TZ = "%Y-%m-%dT%H:%M:%SZ"

# Go-style duration units, as used in Flux resource specs (e.g., "1h30m", "250ms")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """
    Parses a Go-style duration string into a ``timedelta``. Plain numbers are interpreted as seconds.

    Examples: ``"30s"``, ``"5m"``, ``"1h30m"``, ``"1.5h"``, ``"250ms"``.

    :param value: the duration to parse
    :return: the parsed duration
    :raises ValueError: if the value is not a valid duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = str(value).strip()
    if not text:
        raise ValueError("invalid duration: empty string")
    if text == "0":
        return timedelta(0)

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    seconds = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"invalid duration: {value!r}")
        number, unit = match.groups()
        seconds += float(number) * _DURATION_UNITS[unit]
        position = match.end()
    if position != len(text) or position == 0:
        raise ValueError(f"invalid duration: {value!r}")

    return timedelta(seconds=sign * seconds)


def format_duration(duration: timedelta) -> str:
    """Formats a ``timedelta`` in the Go-style notation, e.g., ``1h2m3s`` or ``1.5s``."""
    total = duration.total_seconds()
    if total == 0:
        return "0s"
    sign = "-" if total < 0 else ""
    total = abs(total)
    if total < 1:
        return f"{sign}{round(total * 1000, 3):g}ms"

    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    result = ""
    if hours:
        result += f"{int(hours)}h"
    if hours or minutes:
        result += f"{int(minutes)}m"
    result += f"{round(seconds, 3):g}s"
    return sign + result


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def timestamp(value: datetime = None) -> str:
    value = value or now_utc()
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT_TZ)


def monotonic() -> float:
    return time.monotonic()
