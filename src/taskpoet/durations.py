"""
Duration expressions.

Two grammars are understood, tried in this order:

- TaskWarrior style: an optional integer ordinal, an optional space and a unit
  word ("2h", "3 days", "1w", "quarterly"). A bare unit means a quantity of 1.
  See https://taskwarrior.org/docs/durations/
- Go style: an optional sign followed by one or more decimal number + unit
  pairs ("2h30m", ".5h", "-2h", "0").
"""
from __future__ import annotations

import re
from datetime import timedelta
from typing import Dict

from .errors import InvalidExpressionError

_DAY = timedelta(days=1)

_UNITS: Dict[str, timedelta] = {}


def _register(delta: timedelta, *names: str) -> None:
    for name in names:
        _UNITS[name] = delta


_register(timedelta(seconds=1), "seconds", "second", "secs", "sec", "s")
_register(timedelta(minutes=1), "minutes", "minute", "mins", "min")
_register(timedelta(hours=1), "hours", "hour", "hrs", "hr", "h")
_register(_DAY, "days", "day", "d", "daily")
_register(_DAY * 7, "weeks", "week", "wks", "wk", "w")
_register(_DAY * 30, "monthly", "months", "month", "mnths", "mths", "mth", "mo", "m")
_register(_DAY * 91, "quarterly", "quarters", "quarter", "qrtrs", "qrtr", "qtr", "q")
_register(_DAY * 180, "semiannual")
_register(timedelta(hours=8760), "yearly", "years", "year", "yrs", "yr", "y")

_TASKWARRIOR_RE = re.compile(r"^(?P<ordinal>\d+)?\s?(?P<unit>[a-zµμ]+)$")

_GO_UNITS: Dict[str, float] = {
    "ns": 0.001,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1e3,
    "s": 1e6,
    "m": 60e6,
    "h": 3600e6,
    "d": 86400e6,
}
_GO_NUMBER = r"(?:\d+\.?\d*|\.\d+)"
_GO_UNIT = r"(?:ns|us|µs|μs|ms|s|m|h|d)"
_GO_FULL_RE = re.compile(rf"^[+-]?(?:{_GO_NUMBER}{_GO_UNIT})+$")
_GO_PART_RE = re.compile(rf"({_GO_NUMBER})({_GO_UNIT})")


def _parse_go_duration(s: str) -> timedelta:
    if s in {"0", "+0", "-0"}:
        return timedelta(0)
    if not _GO_FULL_RE.match(s):
        raise InvalidExpressionError(f"invalid duration: {s}")
    micros = 0.0
    for number, unit in _GO_PART_RE.findall(s):
        micros += float(number) * _GO_UNITS[unit]
    total = timedelta(microseconds=micros)
    return -total if s.startswith("-") else total


# PUBLIC_INTERFACE
def parse_duration(expr: str) -> timedelta:
    """
    Parse a duration expression into a timedelta.

    Args:
        expr: expression such as "2 weeks", "quarterly", "5s" or "2h30m".

    Returns:
        The parsed duration. Units in the TaskWarrior table use fixed lengths
        (month = 30 days, quarter = 91 days, year = 8760 hours).

    Raises:
        InvalidExpressionError: for an empty string or an unknown unit.
    """
    s = (expr or "").strip().lower()
    if not s:
        raise InvalidExpressionError("duration must not be an empty string")

    m = _TASKWARRIOR_RE.match(s)
    if m is not None and m.group("unit") in _UNITS:
        ordinal = int(m.group("ordinal")) if m.group("ordinal") else 1
        return _UNITS[m.group("unit")] * ordinal

    try:
        return _parse_go_duration(s)
    except InvalidExpressionError:
        if m is not None:
            raise InvalidExpressionError(f"invalid unit: {m.group('unit')}") from None
        raise
