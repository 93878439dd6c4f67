"""
Client-facing error taxonomy for the habit engine and its workflows
"""

from fastapi import status


class HabitTrackerError(Exception):
    """Base error; carries the HTTP status the API layer responds with"""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidTimezone(HabitTrackerError):
    def __init__(self, timezone_name):
        super().__init__(f"Invalid timezone: {timezone_name}")
        self.timezone_name = timezone_name


class InvalidScheduleDefinition(HabitTrackerError):
    pass


class InvalidDateRange(HabitTrackerError):
    def __init__(self, start, end, detail=None):
        super().__init__(detail or f"End date {end} precedes start date {start}")
        self.start = start
        self.end = end


class HabitNotFound(HabitTrackerError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, habit_id):
        super().__init__("Habit not found")
        self.habit_id = habit_id


class CompletionConflict(HabitTrackerError):
    status_code = status.HTTP_409_CONFLICT
