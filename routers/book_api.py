from fastapi import APIRouter, HTTPException, status, Depends, File, UploadFile
from pymongo.errors import PyMongoError
from schemas.book import BookCreate, BookListResponse, BookStatus, BookUpdate, ProgressUpdate, ReviewRequest
from services.book_manager import BookManager
from services.statistics import StatisticsAggregator
from utils.errors import BookTrackerError, to_http_exception
from utils.utils import send_msg
from dependencies import get_book_manager, get_current_user_id, get_stats_aggregator
import logging

logger = logging.getLogger(__name__)

b_api = APIRouter()

DB_ERROR = "Database error. Please try again later."


@b_api.get("", status_code=status.HTTP_200_OK, response_model=BookListResponse)
async def list_books(
    page: int = 1,
    limit: int = 10,
    status: BookStatus | None = None,
    genre: str | None = None,
    search: str | None = None,
    favorite: bool | None = None,
    uid: str = Depends(get_current_user_id),
    manager: BookManager = Depends(get_book_manager),
):
    try:
        return await manager.list_books(uid, status=status, genre=genre, search=search, favorite=favorite, page=page, limit=limit)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@b_api.get("/stats", status_code=status.HTTP_200_OK)
async def reading_stats(uid: str = Depends(get_current_user_id), aggregator: StatisticsAggregator = Depends(get_stats_aggregator)):
    try:
        return await aggregator.reading_stats(uid)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@b_api.post("", status_code=status.HTTP_201_CREATED)
async def add_book(request: BookCreate, uid: str = Depends(get_current_user_id), manager: BookManager = Depends(get_book_manager)):
    try:
        book = await manager.create(request, uid)
        return send_msg(msg="Book added successfully", book=book)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@b_api.get("/{book_id}", status_code=status.HTTP_200_OK)
async def get_book(book_id: str, uid: str = Depends(get_current_user_id), manager: BookManager = Depends(get_book_manager)):
    try:
        return send_msg(msg="success", book=await manager.get(book_id, uid))
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@b_api.put("/{book_id}", status_code=status.HTTP_200_OK)
async def update_book(book_id: str, request: BookUpdate, uid: str = Depends(get_current_user_id), manager: BookManager = Depends(get_book_manager)):
    try:
        book = await manager.update(book_id, uid, request)
        return send_msg(msg="Book updated successfully", book=book)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@b_api.delete("/{book_id}", status_code=status.HTTP_200_OK)
async def remove_book(book_id: str, uid: str = Depends(get_current_user_id), manager: BookManager = Depends(get_book_manager)):
    try:
        await manager.delete(book_id, uid)
        return send_msg(msg="Book deleted successfully", book_id=book_id)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@b_api.put("/{book_id}/progress", status_code=status.HTTP_200_OK)
async def update_book_progress(book_id: str, request: ProgressUpdate, uid: str = Depends(get_current_user_id), manager: BookManager = Depends(get_book_manager)):
    try:
        book = await manager.update_progress(book_id, uid, request.current_page)
        return send_msg(msg="Reading progress updated successfully", progress=book.reading_progress, status=book.status)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@b_api.post("/{book_id}/review", status_code=status.HTTP_200_OK)
async def add_review(book_id: str, request: ReviewRequest, uid: str = Depends(get_current_user_id), manager: BookManager = Depends(get_book_manager)):
    try:
        book = await manager.add_review(book_id, uid, request.rating, request.comment)
        return send_msg(msg="Review added successfully", review=book.review)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@b_api.post("/{book_id}/cover", status_code=status.HTTP_200_OK)
async def upload_cover(book_id: str, cover: UploadFile = File(...), uid: str = Depends(get_current_user_id), manager: BookManager = Depends(get_book_manager)):
    try:
        data = await cover.read()
        path = await manager.set_cover(book_id, uid, data, cover.filename)
        return send_msg(msg="Cover image uploaded successfully", cover_image=path)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)
