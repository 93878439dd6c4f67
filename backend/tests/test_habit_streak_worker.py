from datetime import date

import pytest

from habit_tracker.models.habit import Habit
from habit_tracker.services.habit_service import HabitService
from habit_tracker.services.habit_trackers import HabitTrackerService
from habit_tracker.workers.habit_streak_worker import HabitStreakWorker
from conftest import utc

NY = "America/New_York"


def add_habit(db, user_id="user-1", schedule="FREQ=DAILY", name="Meditate"):
    return HabitService.create_habit(
        db, user_id, name=name, schedule=schedule, timezone_name=NY, active_from=date(2024, 1, 1)
    )


def test_worker_breaks_stale_streaks(db, session_factory):
    habit = add_habit(db)
    for day in (1, 2, 3):
        HabitTrackerService.toggle_completion(db, "user-1", habit.id, utc(2024, 1, day, 15), NY, now=utc(2024, 1, 3, 20))
    assert (habit.current_streak, habit.longest_streak) == (3, 3)

    results = HabitStreakWorker(session_factory).run_daily_maintenance(now=utc(2024, 1, 6, 15))

    assert results["habits_updated"] == 1
    assert results["streaks_broken"] == 1
    assert results["errors"] == []
    db.expire_all()
    refreshed = db.get(Habit, habit.id)
    assert refreshed.current_streak == 0
    assert refreshed.longest_streak == 3
    assert refreshed.total_completions == 3


def test_worker_counts_new_streaks_from_out_of_band_events(db, session_factory):
    habit = add_habit(db)
    HabitTrackerService.toggle_completion(db, "user-1", habit.id, utc(2024, 1, 1, 15), NY, now=utc(2024, 1, 1, 20))
    # Cache was zeroed by something other than the toggle workflow
    habit.current_streak = 0
    db.commit()

    results = HabitStreakWorker(session_factory).run_daily_maintenance(now=utc(2024, 1, 2, 15))

    assert results["new_streaks"] == 1
    db.expire_all()
    assert db.get(Habit, habit.id).current_streak == 1


def test_worker_reports_habits_with_bad_timezone(db, session_factory):
    good = add_habit(db)
    bad = add_habit(db, user_id="user-2", name="Journal")
    bad.timezone = "Gone/Away"
    db.commit()

    results = HabitStreakWorker(session_factory).run_daily_maintenance(now=utc(2024, 1, 2, 15))

    assert results["habits_updated"] == 1
    assert len(results["errors"]) == 1
    assert bad.id in results["errors"][0]
    assert good.id not in results["errors"][0]


def test_worker_rolls_back_and_reraises_unexpected_failures(db, session_factory, monkeypatch):
    add_habit(db)

    def explode(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(HabitTrackerService, "refresh_habit_stats", explode)
    with pytest.raises(RuntimeError):
        HabitStreakWorker(session_factory).run_daily_maintenance(now=utc(2024, 1, 2, 15))
