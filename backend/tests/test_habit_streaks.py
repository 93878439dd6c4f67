from datetime import date

import pytest

from habit_tracker.core.errors import InvalidTimezone
from habit_tracker.services.habit_calendar import iter_days
from habit_tracker.services.habit_scheduler import Schedule, ScheduledHabit
from habit_tracker.services.habit_streaks import HabitStreakCalculator, StreakInfo
from conftest import Event, utc

TZ = "America/New_York"


def make_habit(schedule="Mon,Wed,Fri", active_from=date(2024, 1, 1), active_until=None, longest=0):
    return ScheduledHabit(
        id="habit-1",
        schedule=Schedule.parse(schedule),
        active_from=active_from,
        active_until=active_until,
        longest_streak=longest,
    )


def completions(*days):
    # Noon UTC is morning of the same calendar day in New York
    return [Event("habit-1", utc(d.year, d.month, d.day, 12)) for d in days]


def test_unbroken_weekday_streak():
    events = completions(date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 5))
    result = HabitStreakCalculator.calculate_streak(make_habit(), events, TZ, date(2024, 1, 7))
    assert result == StreakInfo(3, 3)


def test_missed_due_day_breaks_streak():
    events = completions(date(2024, 1, 1), date(2024, 1, 5))
    result = HabitStreakCalculator.calculate_streak(make_habit(), events, TZ, date(2024, 1, 7))
    assert result == StreakInfo(1, 1)


def test_today_pending_does_not_break_streak():
    events = completions(date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 5))
    # Monday the 8th is due but the day is not over yet
    assert HabitStreakCalculator.calculate_streak(make_habit(), events, TZ, date(2024, 1, 8)) == StreakInfo(3, 3)


def test_today_completed_counts():
    events = completions(date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 5), date(2024, 1, 8))
    assert HabitStreakCalculator.calculate_streak(make_habit(), events, TZ, date(2024, 1, 8)) == StreakInfo(4, 4)


def test_no_completions_keeps_previous_longest():
    result = HabitStreakCalculator.calculate_streak(make_habit(longest=5), [], TZ, date(2024, 1, 7))
    assert result == StreakInfo(0, 5)
    result = HabitStreakCalculator.calculate_streak(make_habit(), [], TZ, date(2024, 1, 7), previous_longest=2)
    assert result == StreakInfo(0, 2)


def test_invalid_timezone_is_rejected_even_without_events():
    with pytest.raises(InvalidTimezone):
        HabitStreakCalculator.calculate_streak(make_habit(), [], "Nowhere/Special", date(2024, 1, 7))


def test_longest_streak_survives_a_break():
    habit = make_habit("FREQ=DAILY")
    events = completions(*iter_days(date(2024, 1, 1), date(2024, 1, 5))) + completions(date(2024, 1, 7), date(2024, 1, 8))
    assert HabitStreakCalculator.calculate_streak(habit, events, TZ, date(2024, 1, 9)) == StreakInfo(2, 5)


def test_cached_longest_is_a_high_water_mark():
    habit = make_habit("FREQ=DAILY", longest=10)
    events = completions(date(2024, 1, 7), date(2024, 1, 8))
    assert HabitStreakCalculator.calculate_streak(habit, events, TZ, date(2024, 1, 9)) == StreakInfo(2, 10)


def test_streak_of_ended_habit_holds_after_active_until():
    habit = make_habit("FREQ=DAILY", active_until=date(2024, 1, 5))
    events = completions(*iter_days(date(2024, 1, 1), date(2024, 1, 5)))
    assert HabitStreakCalculator.calculate_streak(habit, events, TZ, date(2024, 1, 20)) == StreakInfo(5, 5)


def test_completions_before_active_from_are_ignored():
    habit = make_habit("FREQ=DAILY", active_from=date(2024, 1, 3))
    events = completions(*iter_days(date(2024, 1, 1), date(2024, 1, 4)))
    assert HabitStreakCalculator.calculate_streak(habit, events, TZ, date(2024, 1, 4)) == StreakInfo(2, 2)


def test_completion_is_attributed_to_its_local_day():
    habit = make_habit("Mon")
    # Tuesday 03:00 UTC is Monday evening in New York
    events = [Event("habit-1", utc(2024, 1, 2, 3))]
    assert HabitStreakCalculator.calculate_streak(habit, events, TZ, date(2024, 1, 2)) == StreakInfo(1, 1)
    assert HabitStreakCalculator.calculate_streak(habit, events, "UTC", date(2024, 1, 2)) == StreakInfo(0, 0)


def test_duplicate_events_on_one_day_count_once():
    events = completions(date(2024, 1, 1), date(2024, 1, 1), date(2024, 1, 3))
    assert HabitStreakCalculator.calculate_streak(make_habit(), events, TZ, date(2024, 1, 3)) == StreakInfo(2, 2)


@pytest.mark.parametrize("days", [
    [],
    [date(2024, 1, 1)],
    [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 12), date(2024, 1, 15)],
    [date(2024, 1, 2), date(2024, 1, 4), date(2024, 1, 6)],
    list(iter_days(date(2024, 1, 1), date(2024, 1, 21))),
])
def test_current_never_exceeds_longest_and_result_is_stable(days):
    habit = make_habit()
    events = completions(*days)
    first = HabitStreakCalculator.calculate_streak(habit, events, TZ, date(2024, 1, 21))
    second = HabitStreakCalculator.calculate_streak(habit, events, TZ, date(2024, 1, 21))
    assert first.current <= first.longest
    assert first == second


def test_longest_never_decreases_as_history_grows():
    habit = make_habit()
    due_days = [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 8), date(2024, 1, 10), date(2024, 1, 12)]
    longest = 0
    recorded = []
    for index, day in enumerate(due_days):
        recorded.append(day)
        result = HabitStreakCalculator.calculate_streak(
            habit, completions(*recorded), TZ, day, previous_longest=longest
        )
        assert result.longest >= longest
        longest = result.longest
    # Friday the 5th was missed, so the final run is the last three
    assert result == StreakInfo(3, 3)
