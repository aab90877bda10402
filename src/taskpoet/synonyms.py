"""
Relative date synonyms ("eom", "monday", "15th", "later", ...) and the Calendar
that resolves them, or plain durations, against an injectable present moment.
"""
from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from .durations import parse_duration
from .errors import InvalidExpressionError
from .models import as_aware

# "later" and "someday" resolve here
LATER = datetime.max.replace(tzinfo=timezone.utc)

_DATE_DESC = "Date for the specified month, starting at the beginning of the 1st day"
_DAY_DESC = "Date for the specified day, after today, starting at the beginning of the day"
_NTH_DESC = "Next date falling on the specified day of the month, starting at the beginning of the day"

_NTH_RE = re.compile(r"^(?P<day>[1-9]|[12]\d|3[01])(?P<suffix>st|nd|rd|th)$")


# PUBLIC_INTERFACE
class Synonym(str, Enum):
    """A named relative date. Values are the canonical spellings."""

    NOW = "now"
    TODAY = "today"
    END_OF_DAY = "endofday"
    START_OF_DAY = "startofday"
    TOMORROW = "tomorrow"
    YESTERDAY = "yesterday"
    START_OF_YEAR = "startofyear"
    END_OF_YEAR = "endofyear"
    LATER = "later"
    EOM = "eom"
    EOCM = "eocm"
    SOM = "som"
    SOCM = "socm"
    SOW = "sow"
    SOCW = "socw"
    EOW = "eow"
    EOCW = "eocw"
    SOWW = "soww"
    EOWW = "eoww"

    JANUARY = "january"
    FEBRUARY = "february"
    MARCH = "march"
    APRIL = "april"
    MAY = "may"
    JUNE = "june"
    JULY = "july"
    AUGUST = "august"
    SEPTEMBER = "september"
    OCTOBER = "october"
    NOVEMBER = "november"
    DECEMBER = "december"

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def aliases(self) -> List[str]:
        return list(_ALIASES.get(self, []))

    @property
    def description(self) -> str:
        return _DESCRIPTIONS.get(self, "")

    @classmethod
    def lookup(cls, name: str) -> Optional[Synonym]:
        """Exact match on a canonical name or one of its aliases."""
        try:
            return cls(name)
        except ValueError:
            return _BY_ALIAS.get(name)


_MONTHS = [
    Synonym.JANUARY, Synonym.FEBRUARY, Synonym.MARCH, Synonym.APRIL,
    Synonym.MAY, Synonym.JUNE, Synonym.JULY, Synonym.AUGUST,
    Synonym.SEPTEMBER, Synonym.OCTOBER, Synonym.NOVEMBER, Synonym.DECEMBER,
]
# Monday first, matching datetime.weekday()
_WEEKDAYS = [
    Synonym.MONDAY, Synonym.TUESDAY, Synonym.WEDNESDAY, Synonym.THURSDAY,
    Synonym.FRIDAY, Synonym.SATURDAY, Synonym.SUNDAY,
]

_ALIASES: Dict[Synonym, List[str]] = {
    **{m: [m.value[:3]] for m in _MONTHS},
    **{d: [d.value[:3]] for d in _WEEKDAYS},
    Synonym.LATER: ["someday"],
    Synonym.END_OF_DAY: ["eod"],
    Synonym.START_OF_DAY: ["sod"],
    Synonym.START_OF_YEAR: ["soy"],
    Synonym.END_OF_YEAR: ["eoy"],
}
_BY_ALIAS: Dict[str, Synonym] = {alias: syn for syn, names in _ALIASES.items() for alias in names}

_DESCRIPTIONS: Dict[Synonym, str] = {
    **{m: _DATE_DESC for m in _MONTHS},
    **{d: _DAY_DESC for d in _WEEKDAYS},
    Synonym.NOW: "Exactly now",
    Synonym.TODAY: "Start of the day, today",
    Synonym.END_OF_DAY: "End of the day, today",
    Synonym.START_OF_DAY: "Start of the day, today",
    Synonym.TOMORROW: "Start of the day, tomorrow",
    Synonym.YESTERDAY: "Start of the day, yesterday",
    Synonym.START_OF_YEAR: "Start of next year, beginning of the day",
    Synonym.END_OF_YEAR: "End of this year, end of the day",
    Synonym.LATER: "Super far away date",
    Synonym.EOM: "Last day of the current month, end of the day",
    Synonym.EOCM: "Last day of the current month, end of the day",
    Synonym.SOM: "First day of next month, beginning of the day",
    Synonym.SOCM: "First day of the current month, beginning of the day",
    Synonym.SOW: "Start of next week (Sunday), beginning of the day",
    Synonym.SOCW: "Start of the current week (Sunday), beginning of the day",
    Synonym.EOW: "End of the week (Saturday), end of the day",
    Synonym.EOCW: "End of the current week (Saturday), end of the day",
    Synonym.SOWW: "Start of the work week (Monday), beginning of the day",
    Synonym.EOWW: "End of the work week (Friday), end of the day",
}


def floor_day(t: datetime) -> datetime:
    return t.replace(hour=0, minute=0, second=0, microsecond=0)


def ceil_day(t: datetime) -> datetime:
    return t.replace(hour=23, minute=59, second=59, microsecond=999999)


def _sunday_based_weekday(t: datetime) -> int:
    """Weekday with Sunday as 0 and Saturday as 6."""
    return (t.weekday() + 1) % 7


def _follows_system_zone(t: datetime) -> bool:
    """
    True for naive datetimes and for the fixed offsets that astimezone()
    attaches, i.e. times that stand for the system local zone.
    """
    if t.tzinfo is None:
        return True
    return isinstance(t.tzinfo, timezone) and t.utcoffset() == t.astimezone().utcoffset()


# PUBLIC_INTERFACE
class Calendar:
    """
    Resolves date expressions relative to `present`.

    `present` defaults to the local current time; pass a fixed datetime to get
    deterministic results. Naive datetimes are taken as local time.

    Synonyms are computed on the wall clock of the present's zone and the zone
    is attached last, so "tomorrow" or "eom" land on midnight and the end of
    the day even across a daylight saving change. Local times get the offset
    in force on the resulting date.
    """

    def __init__(self, present: Optional[datetime] = None) -> None:
        raw = present if present is not None else datetime.now()
        self.present: datetime = as_aware(raw)  # type: ignore[assignment]
        # None means the system local zone
        self._zone = None if _follows_system_zone(raw) else self.present.tzinfo
        if self._zone is None:
            self._wall = self.present.astimezone().replace(tzinfo=None)
        else:
            self._wall = self.present.replace(tzinfo=None)
        c = self._wall
        at = self._attach
        self._resolvers: Dict[Synonym, Callable[[], datetime]] = {
            Synonym.NOW: lambda: self.present,
            Synonym.TODAY: lambda: at(floor_day(c)),
            Synonym.START_OF_DAY: lambda: at(floor_day(c)),
            Synonym.END_OF_DAY: lambda: at(ceil_day(c)),
            Synonym.TOMORROW: lambda: at(floor_day(c + timedelta(days=1))),
            Synonym.YESTERDAY: lambda: at(floor_day(c - timedelta(days=1))),
            Synonym.START_OF_YEAR: lambda: at(datetime(c.year + 1, 1, 1)),
            Synonym.END_OF_YEAR: lambda: at(ceil_day(datetime(c.year, 12, 31))),
            # never re-localized, datetime.max has no room for an offset
            Synonym.LATER: lambda: LATER,
            Synonym.EOM: self._end_of_month,
            Synonym.EOCM: self._end_of_month,
            Synonym.SOM: self._start_of_next_month,
            Synonym.SOCM: lambda: at(datetime(c.year, c.month, 1)),
            Synonym.SOW: lambda: at(floor_day(c + timedelta(days=7 - _sunday_based_weekday(c)))),
            Synonym.SOCW: lambda: at(floor_day(c - timedelta(days=_sunday_based_weekday(c)))),
            Synonym.EOW: lambda: at(ceil_day(c + timedelta(days=6 - _sunday_based_weekday(c)))),
            Synonym.EOCW: lambda: at(ceil_day(c + timedelta(days=6 - _sunday_based_weekday(c)))),
            Synonym.SOWW: lambda: at(floor_day(c + timedelta(days=(1 - _sunday_based_weekday(c)) % 7))),
            Synonym.EOWW: lambda: at(ceil_day(c + timedelta(days=(5 - _sunday_based_weekday(c)) % 7))),
        }

    def _attach(self, wall: datetime) -> datetime:
        """Give a naive wall-clock result the present's zone."""
        if self._zone is None:
            return wall.astimezone()
        return wall.replace(tzinfo=self._zone)

    def _end_of_month(self) -> datetime:
        c = self._wall
        last = calendar.monthrange(c.year, c.month)[1]
        return self._attach(ceil_day(datetime(c.year, c.month, last)))

    def _start_of_next_month(self) -> datetime:
        c = self._wall
        year, month = (c.year + 1, 1) if c.month == 12 else (c.year, c.month + 1)
        return self._attach(datetime(year, month, 1))

    def _weekday(self, target: int) -> datetime:
        # Same weekday means a week from now, never today
        offset = (target - self._wall.weekday()) % 7 or 7
        return self._attach(floor_day(self._wall + timedelta(days=offset)))

    def _month(self, target: int) -> datetime:
        c = self._wall
        year = c.year + 1 if target <= c.month else c.year
        return self._attach(datetime(year, target, 1))

    def _nth_day(self, day: int) -> datetime:
        """First date strictly after today whose day of month is `day`."""
        c = self._wall
        year, month = c.year, c.month
        if day <= c.day:
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)
        while day > calendar.monthrange(year, month)[1]:
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)
        return self._attach(datetime(year, month, day))

    # PUBLIC_INTERFACE
    def synonym(self, name: str) -> datetime:
        """
        Resolve a named synonym, alias or day ordinal ("1st".."31st").

        Raises:
            InvalidExpressionError: if the name is not a known synonym.
        """
        key = (name or "").strip().lower()
        m = _NTH_RE.match(key)
        if m is not None:
            day = int(m.group("day"))
            if m.group("suffix") != _ordinal_suffix(day):
                raise InvalidExpressionError(f"unknown synonym: {name}")
            return self._nth_day(day)

        syn = Synonym.lookup(key)
        if syn is None:
            raise InvalidExpressionError(f"unknown synonym: {name}")
        if syn in _MONTHS:
            return self._month(_MONTHS.index(syn) + 1)
        if syn in _WEEKDAYS:
            return self._weekday(_WEEKDAYS.index(syn))
        return self._resolvers[syn]()

    # PUBLIC_INTERFACE
    def duration(self, expr: str) -> timedelta:
        return parse_duration(expr)

    # PUBLIC_INTERFACE
    def date(self, expr: str) -> datetime:
        """
        Resolve an expression to an absolute time: a synonym first, then a
        duration added to the present.

        Raises:
            InvalidExpressionError: if the expression is neither.
        """
        try:
            return self.synonym(expr)
        except InvalidExpressionError:
            pass
        try:
            return self.present + parse_duration(expr)
        except InvalidExpressionError as e:
            raise InvalidExpressionError(f"could not resolve date expression {expr!r}: {e}") from e


def _ordinal_suffix(day: int) -> str:
    if 11 <= day <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")


# PUBLIC_INTERFACE
def nth_synonyms() -> List[str]:
    """All day-of-month ordinals, '1st' through '31st'."""
    return [f"{d}{_ordinal_suffix(d)}" for d in range(1, 32)]


# PUBLIC_INTERFACE
def describe_synonyms() -> Dict[str, str]:
    """Every resolvable name, aliases and ordinals included, mapped to its description."""
    out: Dict[str, str] = {}
    for syn in Synonym:
        for name in [syn.value, *syn.aliases]:
            out[name] = syn.description
    for name in nth_synonyms():
        out[name] = _NTH_DESC
    return out
