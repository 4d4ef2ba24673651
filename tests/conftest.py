"""Shared test configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import mongomock
import pytest
import pytest_asyncio
from bson import ObjectId

# Ensure the project root is on sys.path so the top-level modules resolve
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("LOG_FILE", os.devnull)

import constants  # noqa: E402
from crud.crud import MongoCRUD  # noqa: E402
from lib.mongo import DBClient  # noqa: E402
from lib.storage import LocalAssetStorage  # noqa: E402
from services.book_manager import BookManager  # noqa: E402
from services.statistics import StatisticsAggregator  # noqa: E402
from services.users import UserService  # noqa: E402


class RecordingPublisher:
    """Stands in for the RabbitMQ publisher and keeps what was published."""

    def __init__(self):
        self.events: list[dict] = []

    def publish(self, action: str, user_id: str, **payload) -> bool:
        self.events.append({"action": action, "user_id": user_id, **payload})
        return True

    def actions(self) -> list[str]:
        return [event["action"] for event in self.events]


@pytest.fixture
def mongo():
    client = DBClient.get_instance(db_name="book-tracker-test", client=mongomock.MongoClient())
    yield client
    client.close()


@pytest.fixture
def books_crud(mongo) -> MongoCRUD:
    return MongoCRUD(mongo, constants.BOOKS_COLLECTION)


@pytest.fixture
def users_crud(mongo) -> MongoCRUD:
    return MongoCRUD(mongo, constants.USERS_COLLECTION)


@pytest.fixture
def events() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def storage(tmp_path) -> LocalAssetStorage:
    return LocalAssetStorage(root=str(tmp_path / "uploads"))


@pytest.fixture
def manager(books_crud, users_crud, events, storage) -> BookManager:
    return BookManager(books_crud, users_crud, events=events, storage=storage)


@pytest.fixture
def aggregator(books_crud, users_crud) -> StatisticsAggregator:
    return StatisticsAggregator(books_crud, users_crud)


@pytest.fixture
def user_service(users_crud, storage) -> UserService:
    return UserService(users_crud, storage=storage)


@pytest_asyncio.fixture
async def user(user_service):
    return await user_service.register({"username": "reader", "email": "reader@example.com"})


@pytest.fixture
def goal_current(mongo):
    """Reads the raw reading_goal.current of a user straight from the store."""

    def read(user_id: str) -> int:
        doc = mongo.db[constants.USERS_COLLECTION].find_one({"_id": ObjectId(user_id)})
        return doc["reading_goal"]["current"]

    return read
