from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from crud.crud import MongoCRUD
from lib.storage import LocalAssetStorage
from schemas.user import FriendRequest, Preferences, ProfileUpdate, User, UserCreate
from services.book_manager import validate
from utils.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from utils.utils import parse_object_id, utcnow
import logging, re

logger = logging.getLogger(__name__)


class UserService:
    """
    Registration, profiles, avatars and friends. Credentials are handled by
    the authentication service in front of this API.
    """
    def __init__(self, users: MongoCRUD, storage: LocalAssetStorage | None = None, clock=utcnow):
        self.users = users
        self.storage = storage
        self.clock = clock

    async def register(self, data: UserCreate | dict[str, any]) -> User:
        user_in = validate(UserCreate, data)
        email = user_in.email.lower()
        if await self.users.doc_exists({"username": user_in.username}):
            raise ConflictError("Username is already taken", [{"field": "username", "msg": "already exists"}])
        if await self.users.doc_exists({"email": email}):
            raise ConflictError("Email is already registered", [{"field": "email", "msg": "already exists"}])

        now = self.clock()
        doc = {
            "username": user_in.username,
            "email": email,
            "first_name": user_in.first_name,
            "last_name": user_in.last_name,
            "bio": None,
            "avatar": "",
            "reading_goal": {"yearly": user_in.yearly_goal, "current": 0},
            "friends": [],
            "preferences": Preferences().model_dump(),
            "created_at": now,
            "updated_at": now,
        }
        try:
            inserted_id = await self.users.create_document(doc)
        except DuplicateKeyError:
            raise ConflictError("Username or email is already registered")
        logger.info(f"Registered user '{user_in.username}' ({inserted_id})")
        return User.from_doc(doc)

    async def get(self, user_id: str) -> User:
        doc = await self.users.read_document({"_id": parse_object_id(user_id)})
        if doc is None:
            raise NotFoundError("User not found")
        return User.from_doc(doc)

    async def update_profile(self, user_id: str, patch: ProfileUpdate | dict[str, any]) -> User:
        """
        Applies the profile fields the client sent. Only the yearly target of the
        reading goal is client editable; the current count is derived.
        """
        changes = validate(ProfileUpdate, patch).model_dump(exclude_unset=True)
        update_data = {}
        for field in ("first_name", "last_name", "bio"):
            if field in changes:
                update_data[field] = changes[field]
        if changes.get("reading_goal"):
            update_data["reading_goal.yearly"] = changes["reading_goal"]["yearly"]
        for key, value in (changes.get("preferences") or {}).items():
            if value is None:
                continue
            if isinstance(value, dict):
                # merge per setting so unsent flags keep their stored value
                for setting, flag in value.items():
                    update_data[f"preferences.{key}.{setting}"] = flag
            else:
                update_data[f"preferences.{key}"] = value
        update_data["updated_at"] = self.clock()

        doc = await self.users.find_and_update({"_id": parse_object_id(user_id)}, update_data)
        if doc is None:
            raise NotFoundError("User not found")
        return User.from_doc(doc)

    async def set_avatar(self, user_id: str, data: bytes, filename: str) -> str:
        """
        Stores a new avatar image and points the user at it. The previous
        uploaded avatar is released once the user document has moved on.
        """
        if self.storage is None:
            raise InvalidStateError("Avatar uploads are not configured")
        owner_oid = parse_object_id(user_id)
        if owner_oid is None:
            raise NotFoundError("User not found")

        try:
            path = self.storage.store_avatar(data, filename)
        except ValueError as e:
            raise ValidationError.for_field("avatar", str(e))

        try:
            before = await self.users.find_and_update(
                {"_id": owner_oid}, {"avatar": path, "updated_at": self.clock()}, return_document=ReturnDocument.BEFORE
            )
        except PyMongoError:
            self.storage.delete(path)
            raise
        if before is None:
            self.storage.delete(path)
            raise NotFoundError("User not found")

        if self.storage.is_managed(before.get("avatar")):
            self.storage.delete(before["avatar"])
        logger.info(f"User '{user_id}' uploaded avatar {path}")
        return path

    async def list_friends(self, user_id: str) -> list[User]:
        user = await self.get(user_id)
        if not user.friends:
            return []
        docs = await self.users.read_documents({"_id": {"$in": [parse_object_id(f) for f in user.friends]}})
        return [User.from_doc(doc) for doc in docs]

    async def add_friend(self, user_id: str, data: FriendRequest | dict[str, any]) -> User:
        friend_id = validate(FriendRequest, data).friend_id
        owner_oid = parse_object_id(user_id)
        if owner_oid is None or not await self.users.doc_exists({"_id": owner_oid}):
            raise NotFoundError("User not found")
        friend_oid = parse_object_id(friend_id)
        if friend_oid == owner_oid:
            raise ValidationError.for_field("friend_id", "You cannot add yourself as a friend")
        friend_doc = await self.users.read_document({"_id": friend_oid}) if friend_oid else None
        if friend_doc is None:
            raise NotFoundError("User not found")

        matched = await self.users.add_to_set({"_id": owner_oid, "friends": {"$ne": friend_oid}}, "friends", friend_oid)
        if matched == 0:
            raise ValidationError.for_field("friend_id", "User is already your friend")
        logger.info(f"User '{user_id}' added friend '{friend_id}'")
        return User.from_doc(friend_doc)

    async def search(self, user_id: str, query: str | None, limit: int = 10) -> list[User]:
        """
        Case-insensitive match on username, names and email, excluding the caller.
        """
        if not query or not query.strip():
            return []
        pattern = {"$regex": re.escape(query.strip()), "$options": "i"}
        filters = {"$or": [{"username": pattern}, {"first_name": pattern}, {"last_name": pattern}, {"email": pattern}]}
        owner_oid = parse_object_id(user_id)
        if owner_oid is not None:
            filters["_id"] = {"$ne": owner_oid}
        docs = await self.users.read_documents(filters, limit=limit)
        return [User.from_doc(doc) for doc in docs]

    async def list_all(self) -> list[User]:
        docs = await self.users.read_documents({}, sort=[("created_at", -1), ("_id", -1)])
        return [User.from_doc(doc) for doc in docs]
