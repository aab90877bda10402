from datetime import timedelta

import pytest

from taskpoet.durations import parse_duration
from taskpoet.errors import InvalidExpressionError


@pytest.mark.parametrize(
    "expr,expected",
    [
        ("5 s", timedelta(seconds=5)),
        ("90 min", timedelta(minutes=90)),
        ("1h", timedelta(hours=1)),
        ("3 days", timedelta(days=3)),
        ("daily", timedelta(days=1)),
        ("2w", timedelta(weeks=2)),
        ("month", timedelta(days=30)),
        ("quarterly", timedelta(days=91)),
        ("semiannual", timedelta(days=180)),
        ("1y", timedelta(hours=8760)),
        ("  2 Weeks ", timedelta(weeks=2)),
    ],
)
def test_taskwarrior_style(expr, expected):
    assert parse_duration(expr) == expected


@pytest.mark.parametrize(
    "expr,expected",
    [
        ("2h30m", timedelta(hours=2, minutes=30)),
        (".5h", timedelta(minutes=30)),
        ("-2h", -timedelta(hours=2)),
        ("1.5s", timedelta(seconds=1, milliseconds=500)),
        ("250ms", timedelta(milliseconds=250)),
        ("0", timedelta(0)),
    ],
)
def test_go_style(expr, expected):
    assert parse_duration(expr) == expected


@pytest.mark.parametrize("expr", ["", "   ", "5", ".ah", ".s", "-.s", "h2"])
def test_invalid(expr):
    with pytest.raises(InvalidExpressionError):
        parse_duration(expr)


def test_unknown_unit_is_named():
    with pytest.raises(InvalidExpressionError, match="invalid unit: nothing"):
        parse_duration("5nothing")
