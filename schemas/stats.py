from pydantic import BaseModel
from datetime import datetime
from schemas.book import BookStatus, ReadingProgress
from schemas.user import User, UserStats


class GenreCount(BaseModel):
    genre: str
    count: int


class MonthlyCount(BaseModel):
    year: int
    month: int
    count: int


class ReadingStats(BaseModel):
    status_stats: dict[str, int]
    genre_stats: list[GenreCount]
    monthly_reading: list[MonthlyCount]
    total_books: int


class RecentBook(BaseModel):
    id: str
    title: str
    author: str
    status: BookStatus
    updated_at: datetime | None = None


class CurrentlyReading(BaseModel):
    id: str
    title: str
    author: str
    reading_progress: ReadingProgress | None = None


class GoalProgress(BaseModel):
    current: int
    target: int
    percentage: int


class Dashboard(BaseModel):
    user: User
    stats: UserStats
    recent_books: list[RecentBook]
    currently_reading: list[CurrentlyReading]
    reading_goal_progress: GoalProgress
