"""
Habit Scheduling Service - Weekday schedules and due-date matching
"""

import json
from dataclasses import dataclass
from datetime import datetime, date, timedelta
from typing import Any, FrozenSet, Iterable, List, Optional
from dateutil.rrule import rrulestr
import logging

from habit_tracker.core.errors import InvalidScheduleDefinition
from habit_tracker.services.habit_calendar import WEEKDAY_LABELS, iter_days, weekday_label

logger = logging.getLogger(__name__)

_FULL_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_ICAL_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

# Any Monday works as an anchor for expanding one week of an RRULE
_RRULE_ANCHOR = datetime(2024, 1, 1)


def _normalize_label(raw: Any) -> str:
    if not isinstance(raw, str):
        raise InvalidScheduleDefinition(f"Invalid weekday label: {raw!r}")
    token = raw.strip()
    upper = token.upper()
    if upper in _ICAL_CODES:
        return WEEKDAY_LABELS[_ICAL_CODES.index(upper)]
    lower = token.lower()
    if len(lower) >= 3:
        for index, full_name in enumerate(_FULL_NAMES):
            if full_name.startswith(lower):
                return WEEKDAY_LABELS[index]
    raise InvalidScheduleDefinition(f"Invalid weekday label: {raw!r}")


@dataclass(frozen=True)
class Schedule:
    """Validated, non-empty set of weekday labels (Mon..Sun)"""

    days: FrozenSet[str]

    def __post_init__(self):
        if not self.days:
            raise InvalidScheduleDefinition("Schedule must include at least one weekday")
        unknown = set(self.days) - set(WEEKDAY_LABELS)
        if unknown:
            raise InvalidScheduleDefinition(f"Invalid weekday labels: {sorted(unknown)}")

    def __contains__(self, label: str) -> bool:
        return label in self.days

    def ordered(self) -> List[str]:
        return [label for label in WEEKDAY_LABELS if label in self.days]

    def encode(self) -> str:
        """Canonical storage form, e.g. Mon,Wed,Fri"""
        return ",".join(self.ordered())

    @property
    def is_daily(self) -> bool:
        return len(self.days) == len(WEEKDAY_LABELS)

    @classmethod
    def from_labels(cls, labels: Iterable[Any]) -> "Schedule":
        return cls(frozenset(_normalize_label(label) for label in labels))

    @classmethod
    def parse(cls, value: Any) -> "Schedule":
        """
        Build a Schedule from any supported recurrence encoding.

        Accepts a Schedule, an iterable of labels, a comma-delimited string,
        a JSON array string, or an RRULE (FREQ=DAILY or FREQ=WEEKLY;BYDAY=...).
        """
        if isinstance(value, Schedule):
            return value
        if value is None:
            raise InvalidScheduleDefinition("Schedule is required")
        if isinstance(value, str):
            text = value.strip()
            if not text:
                raise InvalidScheduleDefinition("Schedule must include at least one weekday")
            if text.startswith("["):
                try:
                    labels = json.loads(text)
                except json.JSONDecodeError:
                    raise InvalidScheduleDefinition(f"Malformed schedule: {value!r}")
                if not isinstance(labels, list):
                    raise InvalidScheduleDefinition(f"Malformed schedule: {value!r}")
                return cls.from_labels(labels)
            upper = text.upper()
            if upper.startswith("RRULE:") or upper.startswith("FREQ="):
                return cls._from_rrule(text)
            return cls.from_labels(part for part in text.split(",") if part.strip())
        if isinstance(value, (list, tuple, set, frozenset)):
            return cls.from_labels(value)
        raise InvalidScheduleDefinition(f"Unsupported schedule encoding: {type(value).__name__}")

    @classmethod
    def _from_rrule(cls, rrule_string: str) -> "Schedule":
        body = rrule_string.strip()
        if body.upper().startswith("RRULE:"):
            body = body[len("RRULE:"):]
        parts = {}
        for part in body.split(";"):
            if "=" in part:
                key, _, val = part.partition("=")
                parts[key.strip().upper()] = val.strip().upper()

        freq = parts.get("FREQ")
        if freq not in ("DAILY", "WEEKLY"):
            raise InvalidScheduleDefinition(f"Unsupported recurrence frequency: {freq}")
        if parts.get("INTERVAL", "1") != "1":
            raise InvalidScheduleDefinition("Recurrence intervals other than 1 are not supported")
        if freq == "WEEKLY" and "BYDAY" not in parts:
            raise InvalidScheduleDefinition("Weekly recurrence must list BYDAY weekdays")

        try:
            rule = rrulestr(body, dtstart=_RRULE_ANCHOR)
        except (ValueError, TypeError) as e:
            logger.warning(f"Failed to parse RRULE '{rrule_string}': {e}")
            raise InvalidScheduleDefinition(f"Malformed recurrence rule: {rrule_string!r}")

        week = rule.between(_RRULE_ANCHOR, _RRULE_ANCHOR + timedelta(days=6), inc=True)
        return cls(frozenset(weekday_label(occurrence.date()) for occurrence in week))


@dataclass(frozen=True)
class ScheduledHabit:
    """Immutable snapshot of the scheduling-relevant parts of a habit"""

    id: str
    schedule: Optional[Schedule]
    active_from: date
    active_until: Optional[date] = None
    longest_streak: int = 0

    @classmethod
    def from_model(cls, habit: Any) -> "ScheduledHabit":
        try:
            schedule = Schedule.parse(habit.schedule)
        except InvalidScheduleDefinition:
            logger.warning(f"Habit {habit.id} has an unusable schedule {habit.schedule!r}; treating as never due")
            schedule = None
        return cls(
            id=habit.id,
            schedule=schedule,
            active_from=habit.active_from,
            active_until=habit.active_until,
            longest_streak=habit.longest_streak or 0,
        )


class HabitScheduler:
    """Decides which calendar dates a habit is due on"""

    @staticmethod
    def is_due(habit: ScheduledHabit, day: date) -> bool:
        if day < habit.active_from:
            return False
        if habit.active_until is not None and day > habit.active_until:
            return False
        if not habit.schedule:
            return False
        return weekday_label(day) in habit.schedule

    @staticmethod
    def due_dates(habit: ScheduledHabit, start_date: date, end_date: date) -> List[date]:
        """All due dates in the inclusive range, chronological"""
        start = max(start_date, habit.active_from)
        end = end_date if habit.active_until is None else min(end_date, habit.active_until)
        return [d for d in iter_days(start, end) if HabitScheduler.is_due(habit, d)]
