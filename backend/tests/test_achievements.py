from datetime import date
from types import SimpleNamespace

import pytest

from habit_tracker.models.achievement import Achievement, UserAchievement
from habit_tracker.services.achievements import (
    DEFAULT_ACHIEVEMENTS,
    AchievementContext,
    AchievementService,
)
from habit_tracker.services.habit_scheduler import Schedule, ScheduledHabit
from habit_tracker.services.habit_service import HabitService
from habit_tracker.services.habit_trackers import HabitTrackerService
from conftest import auth_headers, utc

NY = "America/New_York"


def add_habit(db, user_id="user-1", name="Meditate"):
    return HabitService.create_habit(
        db, user_id, name=name, schedule="FREQ=DAILY", timezone_name=NY, active_from=date(2024, 1, 1)
    )


def complete(db, habit, day, user_id="user-1"):
    return HabitTrackerService.toggle_completion(
        db, user_id, habit.id, utc(2024, 1, day, 15), NY, now=utc(2024, 1, day, 20)
    )


def earned_keys(db, user_id="user-1"):
    return {ua.achievement.key for ua in AchievementService.earned(db, user_id)}


def catalog_entry(key):
    [definition] = [d for d in DEFAULT_ACHIEVEMENTS if d["key"] == key]
    return Achievement(**definition)


def test_catalog_initialization_is_idempotent(db):
    assert AchievementService.initialize_achievements(db) == len(DEFAULT_ACHIEVEMENTS)
    db.query(Achievement).filter(Achievement.key == "streak_7").update({"name": "Renamed"})
    db.commit()

    AchievementService.initialize_achievements(db)

    assert db.query(Achievement).count() == len(DEFAULT_ACHIEVEMENTS)
    assert db.query(Achievement).filter(Achievement.key == "streak_7").one().name == "Week Streak"


def test_catalog_is_seeded_on_first_use(db):
    assert db.query(Achievement).count() == 0
    assert len(AchievementService.list_catalog(db)) == len(DEFAULT_ACHIEVEMENTS)


def test_first_completion_awards_getting_started_achievements(db):
    habit = add_habit(db)
    result = complete(db, habit, 1)
    assert set(result.new_achievements) == {"first_habit", "first_completion"}
    assert earned_keys(db) == {"first_habit", "first_completion"}


def test_streak_achievement_awarded_once_threshold_reached(db):
    habit = add_habit(db)
    complete(db, habit, 1)
    assert complete(db, habit, 2).new_achievements == ()
    assert complete(db, habit, 3).new_achievements == ("streak_3",)

    assert AchievementService.check_and_award(db, "user-1", NY, now=utc(2024, 1, 3, 20)) == []
    assert db.query(UserAchievement).filter(UserAchievement.user_id == "user-1").count() == 3


def test_earned_achievements_survive_undone_completions(db):
    habit = add_habit(db)
    complete(db, habit, 1)
    undo = complete(db, habit, 1)
    assert undo.status == "removed"
    assert undo.new_achievements == ()
    assert "first_completion" in earned_keys(db)


def test_achievements_are_per_user(db):
    complete(db, add_habit(db), 1)
    add_habit(db, user_id="user-2")
    assert AchievementService.check_and_award(db, "user-2", NY) != []
    assert earned_keys(db, "user-2") == {"first_habit"}


def test_achievement_count_sees_awards_from_the_same_round(db):
    AchievementService.initialize_achievements(db)
    db.query(Achievement).filter(Achievement.key == "habit_legend").update({"requirement_value": 2})
    db.commit()

    result = complete(db, add_habit(db), 1)

    assert result.new_achievements[-1] == "habit_legend"
    assert "first_completion" in result.new_achievements


@pytest.fixture
def evening_and_morning_context():
    habits = [
        ScheduledHabit("a", Schedule.parse("FREQ=DAILY"), date(2024, 1, 1)),
        ScheduledHabit("b", Schedule.parse("FREQ=DAILY"), date(2024, 1, 1)),
    ]
    events = [
        # 06:00 Saturday in New York
        SimpleNamespace(habit_id="a", occurred_at=utc(2024, 1, 6, 11), notes="felt good"),
        # 23:00 Saturday in New York, already Sunday in UTC
        SimpleNamespace(habit_id="b", occurred_at=utc(2024, 1, 7, 4), notes="  "),
        SimpleNamespace(habit_id="a", occurred_at=utc(2024, 1, 8, 17), notes=None),
    ]
    return habits, events


def test_time_of_day_requirements_use_the_local_clock(evening_and_morning_context):
    habits, events = evening_and_morning_context
    context = AchievementContext(habits, events, NY, date(2024, 1, 8))
    assert context.days_before_hour(8) == 1
    assert context.days_from_hour(22) == 1
    assert context.weekend_days == 1
    assert context.max_single_day_completions == 2
    assert context.active_days == 2
    assert context.notes_added == 1

    in_utc = AchievementContext(habits, events, "UTC", date(2024, 1, 8))
    assert in_utc.days_before_hour(8) == 2
    assert in_utc.weekend_days == 2
    assert in_utc.max_single_day_completions == 1


def test_completion_rate_needs_a_fully_covered_window(evening_and_morning_context):
    habits, events = evening_and_morning_context
    context = AchievementContext(habits, events, NY, date(2024, 1, 8))
    assert context.completion_rate(7) == 21.43
    assert context.completion_rate(30) == 0.0
    assert AchievementContext([], [], NY, date(2024, 1, 8)).completion_rate(7) == 0.0


def test_progress_toward_unearned_achievements(evening_and_morning_context):
    habits, events = evening_and_morning_context
    context = AchievementContext(habits, events, NY, date(2024, 1, 8), earned_count=5)

    progress = AchievementService.progress(catalog_entry("three_habits"), context)
    assert (progress.current_value, progress.target_value, progress.progress_percentage) == (2, 3, 66.67)
    assert AchievementService.progress(catalog_entry("first_habit"), context).progress_percentage == 100.0
    assert AchievementService.progress(catalog_entry("habit_legend"), context).current_value == 5
    assert AchievementService.progress(catalog_entry("early_bird"), context).progress_percentage == 14.29


def test_achievement_routes_require_a_token(client):
    assert client.get("/achievements").status_code == 401
    assert client.post("/achievements/initialize").status_code == 401


def test_toggle_response_lists_new_achievements(client):
    response = client.post(
        f"/habits?timezone={NY}",
        json={"name": "Stretch", "schedule": "FREQ=DAILY", "active_from": "2024-01-01"},
        headers=auth_headers(),
    )
    habit_id = response.json()["id"]

    response = client.post(
        f"/habits/{habit_id}/trackers",
        json={"occurredAt": "2024-01-08T15:00:00Z", "timezone": NY},
        headers=auth_headers(),
    )
    assert response.status_code == 201
    assert response.json()["new_achievements"] == ["first_completion"]

    earned = client.get("/achievements/earned", headers=auth_headers()).json()
    assert {a["key"] for a in earned} == {"first_habit", "first_completion"}

    catalog = {a["key"]: a for a in client.get(f"/achievements?timezone={NY}", headers=auth_headers()).json()}
    assert len(catalog) == len(DEFAULT_ACHIEVEMENTS)
    assert catalog["first_habit"]["is_earned"] is True
    assert catalog["first_habit"]["progress"] is None
    assert catalog["completions_10"]["progress"] == {
        "current_value": 1,
        "target_value": 10,
        "progress_percentage": 10.0,
    }

    stats = client.get("/achievements/stats", headers=auth_headers()).json()
    assert stats["total_achievements"] == len(DEFAULT_ACHIEVEMENTS)
    assert stats["earned_achievements"] == 2
    assert stats["category_stats"]["getting_started"] == {"total": 5, "earned": 2}
    assert len(stats["recent_achievements"]) == 2

    check = client.post(f"/achievements/check?timezone={NY}", headers=auth_headers()).json()
    assert check["count"] == 0
    assert check["new_achievements"] == []


def test_check_and_initialize_endpoints(client, db):
    add_habit(db)
    response = client.post(f"/achievements/check?timezone={NY}", headers=auth_headers())
    assert response.status_code == 200
    assert [a["key"] for a in response.json()["new_achievements"]] == ["first_habit"]

    response = client.post("/achievements/initialize", headers=auth_headers())
    assert response.json() == {"message": "Achievements initialized successfully", "count": len(DEFAULT_ACHIEVEMENTS)}

    response = client.get("/achievements?timezone=Moon/Tranquility", headers=auth_headers())
    assert response.status_code == 400
