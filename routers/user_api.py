from fastapi import APIRouter, HTTPException, status, Depends, File, UploadFile
from pymongo.errors import PyMongoError
from schemas.user import FriendRequest, ProfileUpdate, UserCreate
from services.statistics import StatisticsAggregator
from services.users import UserService
from utils.errors import BookTrackerError, to_http_exception
from utils.utils import send_msg
from dependencies import get_current_user_id, get_stats_aggregator, get_user_service
import logging

logger = logging.getLogger(__name__)

u_api = APIRouter()

DB_ERROR = "Database error. Please try again later."


@u_api.post("/register", status_code=status.HTTP_201_CREATED)
async def register(request: UserCreate, users: UserService = Depends(get_user_service)):
    try:
        user = await users.register(request)
        return send_msg(msg="User registered successfully", user=user)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@u_api.get("/me", status_code=status.HTTP_200_OK)
async def me(uid: str = Depends(get_current_user_id), users: UserService = Depends(get_user_service), aggregator: StatisticsAggregator = Depends(get_stats_aggregator)):
    try:
        # reading_goal.current is only trusted after a fresh sync
        await aggregator.sync_goal_counter(uid)
        return send_msg(msg="success", user=await users.get(uid))
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@u_api.get("/profile", status_code=status.HTTP_200_OK)
async def profile(uid: str = Depends(get_current_user_id), users: UserService = Depends(get_user_service), aggregator: StatisticsAggregator = Depends(get_stats_aggregator)):
    try:
        await aggregator.sync_goal_counter(uid)
        user = await users.get(uid)
        return send_msg(msg="success", user=user, stats=await aggregator.user_stats(uid))
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@u_api.put("/profile", status_code=status.HTTP_200_OK)
async def update_profile(request: ProfileUpdate, uid: str = Depends(get_current_user_id), users: UserService = Depends(get_user_service)):
    try:
        user = await users.update_profile(uid, request)
        return send_msg(msg="Profile updated successfully", user=user)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@u_api.get("/dashboard", status_code=status.HTTP_200_OK)
async def dashboard(uid: str = Depends(get_current_user_id), aggregator: StatisticsAggregator = Depends(get_stats_aggregator)):
    try:
        return await aggregator.dashboard(uid)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@u_api.post("/avatar", status_code=status.HTTP_200_OK)
async def upload_avatar(avatar: UploadFile = File(...), uid: str = Depends(get_current_user_id), users: UserService = Depends(get_user_service)):
    try:
        path = await users.set_avatar(uid, await avatar.read(), avatar.filename)
        return send_msg(msg="Avatar uploaded successfully", avatar=path)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@u_api.get("/all", status_code=status.HTTP_200_OK)
async def all_users(uid: str = Depends(get_current_user_id), users: UserService = Depends(get_user_service), aggregator: StatisticsAggregator = Depends(get_stats_aggregator)):
    try:
        return send_msg(msg="success", users=await aggregator.with_stats(await users.list_all()))
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@u_api.get("/search", status_code=status.HTTP_200_OK)
async def search_users(q: str | None = None, uid: str = Depends(get_current_user_id), users: UserService = Depends(get_user_service), aggregator: StatisticsAggregator = Depends(get_stats_aggregator)):
    try:
        return send_msg(msg="success", users=await aggregator.with_stats(await users.search(uid, q)))
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@u_api.get("/friends", status_code=status.HTTP_200_OK)
async def friends(uid: str = Depends(get_current_user_id), users: UserService = Depends(get_user_service)):
    try:
        return send_msg(msg="success", friends=await users.list_friends(uid))
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)


@u_api.post("/friends", status_code=status.HTTP_200_OK)
async def add_friend(request: FriendRequest, uid: str = Depends(get_current_user_id), users: UserService = Depends(get_user_service)):
    try:
        friend = await users.add_friend(uid, request)
        return send_msg(msg="Friend added successfully", friend=friend)
    except BookTrackerError as err:
        raise to_http_exception(err)
    except PyMongoError as mongo_err:
        logger.error(f"MongoDB error: {mongo_err}")
        raise HTTPException(status_code=500, detail=DB_ERROR)
