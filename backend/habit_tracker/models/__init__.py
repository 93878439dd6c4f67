from .habit import Habit, CompletionEvent
from .achievement import Achievement, UserAchievement
