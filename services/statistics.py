"""
Read side of the book tracker: status, genre and monthly counts over a
user's books, plus the authoritative re-derivation of the reading goal
counter.
"""
from collections import Counter
from crud.crud import MongoCRUD
from schemas.book import BookStatus
from schemas.stats import CurrentlyReading, Dashboard, GenreCount, GoalProgress, MonthlyCount, ReadingStats, RecentBook
from schemas.user import User, UserStats, UserWithStats
from services.lifecycle import progress_percentage
from utils.errors import NotFoundError
from utils.utils import parse_object_id, utcnow, year_bounds
import logging

logger = logging.getLogger(__name__)


class StatisticsAggregator:
    def __init__(self, books: MongoCRUD, users: MongoCRUD, clock=utcnow):
        self.books = books
        self.users = users
        self.clock = clock

    async def status_breakdown(self, user_id: str) -> dict[str, int]:
        counts = {status.value: 0 for status in BookStatus}
        for doc in await self.books.read_documents({"user_id": user_id}, projection={"status": 1}):
            status = doc.get("status")
            if status in counts:
                counts[status] += 1
        return counts

    async def top_genres(self, user_id: str, limit: int = 5) -> list[GenreCount]:
        # Counter keeps first-seen order for equal counts, so ties follow storage order
        genres = Counter()
        for doc in await self.books.read_documents({"user_id": user_id}, projection={"genre": 1}):
            if doc.get("genre"):
                genres[doc["genre"]] += 1
        return [GenreCount(genre=genre, count=count) for genre, count in genres.most_common(limit)]

    async def monthly_completions(self, user_id: str, limit: int = 12) -> list[MonthlyCount]:
        query = {"user_id": user_id, "status": BookStatus.READ.value, "date_finished": {"$ne": None}}
        months = Counter()
        for doc in await self.books.read_documents(query, projection={"date_finished": 1}):
            finished = doc.get("date_finished")
            if finished is None:
                continue
            months[(finished.year, finished.month)] += 1

        buckets = sorted(months.items(), key=lambda item: item[0], reverse=True)[:limit]
        return [MonthlyCount(year=year, month=month, count=count) for (year, month), count in buckets]

    async def count_read_this_year(self, user_id: str) -> int:
        start, end = year_bounds(self.clock())
        return await self.books.count_documents({
            "user_id": user_id,
            "status": BookStatus.READ.value,
            "date_finished": {"$gte": start, "$lt": end},
        })

    async def sync_goal_counter(self, user_id: str) -> int:
        """
        Overwrites the user's reading_goal.current with the number of books
        finished in the current UTC calendar year. Safe to run repeatedly.
        """
        current = await self.count_read_this_year(user_id)
        owner_oid = parse_object_id(user_id)
        if owner_oid is None:
            raise NotFoundError("User not found")
        matched = await self.users.update_document({"_id": owner_oid}, {"reading_goal.current": current})
        if matched == 0:
            raise NotFoundError("User not found")
        logger.debug(f"Reading goal of user '{user_id}' synced to {current}")
        return current

    async def reading_stats(self, user_id: str) -> ReadingStats:
        status_stats = await self.status_breakdown(user_id)
        await self.sync_goal_counter(user_id)
        return ReadingStats(
            status_stats=status_stats,
            genre_stats=await self.top_genres(user_id),
            monthly_reading=await self.monthly_completions(user_id),
            total_books=sum(status_stats.values()),
        )

    async def user_stats(self, user_id: str) -> UserStats:
        counts = await self.status_breakdown(user_id)
        return UserStats(
            total_books=sum(counts.values()),
            books_read=counts[BookStatus.READ.value],
            books_reading=counts[BookStatus.READING.value],
            books_to_read=counts[BookStatus.TO_READ.value],
        )

    async def with_stats(self, users: list[User]) -> list[UserWithStats]:
        return [UserWithStats(**user.model_dump(), stats=await self.user_stats(user.id)) for user in users]

    async def dashboard(self, user_id: str) -> Dashboard:
        current = await self.sync_goal_counter(user_id)
        user_doc = await self.users.read_document({"_id": parse_object_id(user_id)})
        if user_doc is None:
            raise NotFoundError("User not found")
        user = User.from_doc(user_doc)

        recent = await self.books.read_documents(
            {"user_id": user_id}, limit=5, sort=[("updated_at", -1), ("_id", -1)]
        )
        reading = await self.books.read_documents({"user_id": user_id, "status": BookStatus.READING.value})

        target = user.reading_goal.yearly
        percentage = progress_percentage(current, target) or 0
        return Dashboard(
            user=user,
            stats=await self.user_stats(user_id),
            recent_books=[RecentBook(id=str(doc["_id"]), **_pick(doc, "title", "author", "status", "updated_at")) for doc in recent],
            currently_reading=[CurrentlyReading(id=str(doc["_id"]), **_pick(doc, "title", "author", "reading_progress")) for doc in reading],
            reading_goal_progress=GoalProgress(current=current, target=target, percentage=percentage),
        )


def _pick(doc: dict[str, any], *fields: str) -> dict[str, any]:
    return {field: doc.get(field) for field in fields if doc.get(field) is not None}
