from fastapi import Depends, Header, HTTPException, status
from crud.crud import MongoCRUD
from lib.mongo import DBClient
from lib.rabbit import EventPublisher
from lib.redis import redis_client
from lib.storage import LocalAssetStorage
from services.book_manager import BookManager
from services.metadata import GoogleBooksClient
from services.statistics import StatisticsAggregator
from services.users import UserService
import constants

def get_books_crud() -> MongoCRUD:
    client = DBClient.get_instance()
    return MongoCRUD(client, constants.BOOKS_COLLECTION)

def get_users_crud() -> MongoCRUD:
    client = DBClient.get_instance()
    return MongoCRUD(client, constants.USERS_COLLECTION)

def get_event_publisher() -> EventPublisher:
    return EventPublisher()

def get_asset_storage() -> LocalAssetStorage:
    return LocalAssetStorage()

def get_metadata_client() -> GoogleBooksClient:
    return GoogleBooksClient(cache=redis_client)

def get_book_manager(
    books: MongoCRUD = Depends(get_books_crud),
    users: MongoCRUD = Depends(get_users_crud),
    events: EventPublisher = Depends(get_event_publisher),
    storage: LocalAssetStorage = Depends(get_asset_storage),
) -> BookManager:
    return BookManager(books, users, events=events, storage=storage)

def get_stats_aggregator(
    books: MongoCRUD = Depends(get_books_crud),
    users: MongoCRUD = Depends(get_users_crud),
) -> StatisticsAggregator:
    return StatisticsAggregator(books, users)

def get_user_service(
    users: MongoCRUD = Depends(get_users_crud),
    storage: LocalAssetStorage = Depends(get_asset_storage),
) -> UserService:
    return UserService(users, storage=storage)

async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    # identity is established by the auth gateway in front of this service
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"kind": "unauthorized", "message": "Missing caller identity"},
        )
    return x_user_id
