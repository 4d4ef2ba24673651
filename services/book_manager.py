"""
Book record manager: create, update, progress, review and delete for a
user's books, keeping the status dates, reading progress and the owner's
reading goal counter consistent.
"""
from pydantic import BaseModel, ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError
from fastapi.concurrency import run_in_threadpool
from crud.crud import MongoCRUD
from lib.rabbit import EventPublisher
from lib.storage import LocalAssetStorage
from schemas.book import Book, BookCreate, BookStatus, BookUpdate, ProgressUpdate, ReviewRequest
from services.lifecycle import build_progress, status_for_progress, transition
from utils.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from utils.utils import parse_object_id, utcnow
import logging, math, re, constants

logger = logging.getLogger(__name__)

UNIQUE_FIELDS = {"isbn": "ISBN", "google_books_id": "Google Books ID"}

# Patch fields that may not be explicitly nulled
NON_NULLABLE = ("title", "author", "genre", "status", "language", "cover_image", "tags", "notes", "favorite", "priority")


def validate(model_cls: type[BaseModel], data: BaseModel | dict[str, any]) -> BaseModel:
    if isinstance(data, model_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as err:
        raise ValidationError.from_pydantic(err)


class BookManager:
    def __init__(self, books: MongoCRUD, users: MongoCRUD, events: EventPublisher | None = None, storage: LocalAssetStorage | None = None, clock=utcnow):
        self.books = books
        self.users = users
        self.events = events
        self.storage = storage
        self.clock = clock

    # -- reads --

    async def get(self, book_id: str, owner_id: str) -> Book:
        return Book.from_doc(await self._get_owned(book_id, owner_id))

    async def list_books(self, owner_id: str, status: str | None = None, genre: str | None = None,
                         search: str | None = None, favorite: bool | None = None,
                         page: int = 1, limit: int = 10) -> dict[str, any]:
        if page < 1:
            raise ValidationError.for_field("page", "Page must be a positive integer")
        if not 1 <= limit <= 100:
            raise ValidationError.for_field("limit", "Limit must be between 1 and 100")

        query = {"user_id": owner_id}
        if status:
            query["status"] = self._status(status).value
        if genre:
            query["genre"] = {"$regex": re.escape(genre), "$options": "i"}
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"title": pattern}, {"author": pattern}]
        if favorite is not None:
            query["favorite"] = favorite

        total = await self.books.count_documents(query)
        docs = await self.books.read_documents(
            query, limit=limit, skip=(page - 1) * limit, sort=[("created_at", -1), ("_id", -1)]
        )
        total_pages = math.ceil(total / limit)
        return {
            "books": [Book.from_doc(doc) for doc in docs],
            "current_page": page,
            "total_pages": total_pages,
            "total_books": total,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        }

    # -- writes --

    async def create(self, data: BookCreate | dict[str, any], owner_id: str) -> Book:
        book_in = validate(BookCreate, data)
        owner_oid = parse_object_id(owner_id)
        if owner_oid is None or not await self.users.doc_exists({"_id": owner_oid}):
            raise NotFoundError("User not found")

        fields = book_in.model_dump(exclude={"current_page"})
        for field in UNIQUE_FIELDS:
            if not fields.get(field):
                fields.pop(field, None)
        await self._check_unique(fields)

        now = self.clock()
        change = transition(None, book_in.status, now)
        doc = {
            **fields,
            "status": change.status.value,
            "priority": book_in.priority.value,
            "notes": self._stamp_notes(fields["notes"], now),
            "user_id": owner_id,
            "date_added": now,
            "created_at": now,
            "updated_at": now,
            "version": 0,
        }
        if change.date_started is not None:
            doc["date_started"] = change.date_started
        if change.date_finished is not None:
            doc["date_finished"] = change.date_finished
        if book_in.page_count:
            doc["reading_progress"] = build_progress(book_in.current_page or 0, book_in.page_count, now)

        try:
            inserted_id = await self.books.create_document(doc)
        except DuplicateKeyError:
            raise ConflictError("Book with this ISBN or Google Books ID already exists")
        logger.info(f"User '{owner_id}' added book '{inserted_id}' with status '{change.status.value}'")

        await self._adjust_goal(owner_id, change.goal_delta, inserted_id)
        await self._publish(constants.BOOK_ADDED, owner_id, book_id=inserted_id, status=change.status.value)
        return Book.from_doc(doc)

    async def update(self, book_id: str, owner_id: str, patch: BookUpdate | dict[str, any]) -> Book:
        changes = validate(BookUpdate, patch).model_dump(exclude_unset=True)
        for field in NON_NULLABLE:
            if field in changes and changes[field] is None:
                raise ValidationError.for_field(field, f"{field} cannot be empty")

        for _ in range(constants.MAX_WRITE_ATTEMPTS):
            doc = await self._get_owned(book_id, owner_id)
            await self._check_unique(changes, exclude_id=doc["_id"])
            now = self.clock()

            set_data, unset_fields = {}, []
            for field, value in changes.items():
                if field in ("status", "page_count"):
                    continue
                if value is None or (field in UNIQUE_FIELDS and value == ""):
                    unset_fields.append(field)
                elif field == "priority":
                    set_data[field] = value.value
                elif field == "notes":
                    set_data[field] = self._stamp_notes(value, now)
                else:
                    set_data[field] = value

            if "page_count" in changes:
                self._rebase_progress(doc, changes["page_count"], now, set_data, unset_fields)

            goal_delta, old_status = 0, doc.get("status")
            if "status" in changes:
                goal_delta = self._apply_status(doc, changes["status"], now, set_data, unset_fields)

            if await self._write(doc, set_data, unset_fields, now):
                break
        else:
            raise ConflictError("Book was modified by another request, please retry")

        await self._adjust_goal(owner_id, goal_delta, book_id)
        # one event per write, a status change supersedes the plain update
        if doc["status"] != old_status:
            await self._publish(constants.BOOK_STATUS_CHANGED, owner_id, book_id=book_id, old_status=old_status, status=doc["status"])
        else:
            await self._publish(constants.BOOK_UPDATED, owner_id, book_id=book_id)
        return Book.from_doc(doc)

    async def update_progress(self, book_id: str, owner_id: str, current_page: int) -> Book:
        current_page = validate(ProgressUpdate, {"current_page": current_page}).current_page

        for _ in range(constants.MAX_WRITE_ATTEMPTS):
            doc = await self._get_owned(book_id, owner_id)
            progress = doc.get("reading_progress")
            if not progress:
                raise InvalidStateError("Reading progress not initialized for this book")

            now = self.clock()
            set_data, unset_fields = {}, []
            set_data["reading_progress"] = build_progress(current_page, progress["total_pages"], now)

            goal_delta, old_status = 0, doc.get("status")
            new_status = status_for_progress(old_status, current_page, progress["total_pages"])
            if new_status != old_status:
                goal_delta = self._apply_status(doc, new_status, now, set_data, unset_fields)

            if await self._write(doc, set_data, unset_fields, now):
                break
        else:
            raise ConflictError("Book was modified by another request, please retry")

        await self._adjust_goal(owner_id, goal_delta, book_id)
        if doc["status"] != old_status:
            logger.info(f"Book '{book_id}' moved from '{old_status}' to '{doc['status']}' by progress update")
            await self._publish(constants.BOOK_STATUS_CHANGED, owner_id, book_id=book_id, old_status=old_status, status=doc["status"])
        return Book.from_doc(doc)

    async def add_review(self, book_id: str, owner_id: str, rating: int, comment: str | None = None) -> Book:
        review_in = validate(ReviewRequest, {"rating": rating, "comment": comment})

        for _ in range(constants.MAX_WRITE_ATTEMPTS):
            doc = await self._get_owned(book_id, owner_id)
            now = self.clock()
            review = {"rating": review_in.rating, "comment": review_in.comment or "", "date_added": now}
            if await self._write(doc, {"review": review}, [], now):
                break
        else:
            raise ConflictError("Book was modified by another request, please retry")

        await self._publish(constants.BOOK_UPDATED, owner_id, book_id=book_id)
        return Book.from_doc(doc)

    async def delete(self, book_id: str, owner_id: str) -> Book:
        deleted = await self.books.delete_document(self._owned_filter(book_id, owner_id))
        if deleted is None:
            raise NotFoundError("Book not found")

        if deleted.get("status") == BookStatus.READ.value:
            await self._adjust_goal(owner_id, -1, book_id)
        self._release_cover(deleted.get("cover_image"))
        logger.info(f"User '{owner_id}' removed book '{book_id}'")
        await self._publish(constants.BOOK_REMOVED, owner_id, book_id=book_id, status=deleted.get("status"))
        return Book.from_doc(deleted)

    async def set_cover(self, book_id: str, owner_id: str, data: bytes, filename: str) -> str:
        if self.storage is None:
            raise InvalidStateError("Cover uploads are not configured")

        for _ in range(constants.MAX_WRITE_ATTEMPTS):
            doc = await self._get_owned(book_id, owner_id)
            try:
                path = self.storage.store_cover(data, filename)
            except ValueError as e:
                raise ValidationError.for_field("cover", str(e))

            now = self.clock()
            old_cover = doc.get("cover_image")
            try:
                written = await self._write(doc, {"cover_image": path}, [], now)
            except PyMongoError:
                self._release_cover(path)
                raise
            if written:
                break
            self._release_cover(path)
        else:
            raise ConflictError("Book was modified by another request, please retry")

        self._release_cover(old_cover)
        await self._publish(constants.BOOK_UPDATED, owner_id, book_id=book_id)
        return path

    # -- helpers --

    def _status(self, value: str) -> BookStatus:
        try:
            return BookStatus(value)
        except ValueError:
            raise ValidationError.for_field("status", "Invalid status")

    def _owned_filter(self, book_id: str, owner_id: str) -> dict[str, any]:
        oid = parse_object_id(book_id)
        if oid is None:
            raise ValidationError.for_field("id", "Invalid book ID format")
        return {"_id": oid, "user_id": owner_id}

    async def _get_owned(self, book_id: str, owner_id: str) -> dict[str, any]:
        # a book owned by someone else is reported exactly like a missing one
        doc = await self.books.read_document(self._owned_filter(book_id, owner_id))
        if doc is None:
            raise NotFoundError("Book not found")
        return doc

    async def _check_unique(self, values: dict[str, any], exclude_id=None):
        for field, label in UNIQUE_FIELDS.items():
            value = values.get(field)
            if not value:
                continue
            query = {field: value}
            if exclude_id is not None:
                query["_id"] = {"$ne": exclude_id}
            if await self.books.doc_exists(query):
                raise ConflictError(f"Book with this {label} already exists", [{"field": field, "msg": "already exists"}])

    def _apply_status(self, doc, new_status, now, set_data, unset_fields) -> int:
        change = transition(doc.get("status"), new_status, now, doc.get("date_started"), doc.get("date_finished"))
        set_data["status"] = change.status.value
        if change.date_started is not None:
            set_data["date_started"] = change.date_started
        if change.date_finished is None:
            if "date_finished" in doc:
                unset_fields.append("date_finished")
        else:
            set_data["date_finished"] = change.date_finished
        return change.goal_delta

    def _rebase_progress(self, doc, page_count, now, set_data, unset_fields):
        if page_count is None:
            unset_fields.append("page_count")
            return
        set_data["page_count"] = page_count
        current_page = (doc.get("reading_progress") or {}).get("current_page", 0)
        set_data["reading_progress"] = build_progress(current_page, page_count, now)

    def _stamp_notes(self, notes: list[dict[str, any]], now) -> list[dict[str, any]]:
        return [{**note, "date_added": note.get("date_added") or now} for note in notes]

    async def _write(self, doc, set_data, unset_fields, now) -> bool:
        """
        Compare-and-swap on the version read with 'doc'. On success 'doc' is
        updated in place to the written state.
        """
        set_data["updated_at"] = now
        query = {"_id": doc["_id"], "user_id": doc["user_id"], "version": doc.get("version")}
        matched = await self.books.update_document(query, set_data, unset_fields, {"version": 1})
        if matched == 0:
            logger.info(f"Book '{doc['_id']}' changed while being updated, retrying")
            return False

        doc.update(set_data)
        for field in unset_fields:
            doc.pop(field, None)
        doc["version"] = (doc.get("version") or 0) + 1
        return True

    async def _adjust_goal(self, owner_id: str, delta: int, book_id: str):
        """
        Fast path update of the owner's reading goal counter. A failure here
        does not undo the book write; the statistics sync repairs the counter.
        """
        if delta == 0:
            return
        owner_oid = parse_object_id(owner_id)
        query = {"_id": owner_oid}
        if delta < 0:
            query["reading_goal.current"] = {"$gt": 0}
        try:
            matched = await self.users.increment(query, "reading_goal.current", delta)
            if matched == 0:
                logger.warning(f"Reading goal of user '{owner_id}' not adjusted by {delta} for book '{book_id}'")
        except PyMongoError as e:
            logger.error(f"Reading goal adjustment failed for user '{owner_id}', scheduling reconcile: {e}")
            await self._publish(constants.GOAL_RECONCILE, owner_id, book_id=book_id)

    def _release_cover(self, path: str | None):
        if self.storage is None or not self.storage.is_managed(path):
            return
        try:
            self.storage.delete(path)
        except OSError as e:
            logger.warning(f"Could not delete cover '{path}': {e}")

    async def _publish(self, action: str, owner_id: str, **payload: any):
        # the pika publisher blocks, keep it off the event loop
        if self.events is not None:
            await run_in_threadpool(self.events.publish, action, owner_id, **payload)
