from pymongo import ReturnDocument
from pymongo.errors import PyMongoError
from lib.mongo import DBClient
import logging

logger = logging.getLogger(__name__)

class MongoCRUD:
    """
    Thin async facade over one collection. Database errors are logged and
    re-raised so the routers can turn them into a 500.
    """
    def __init__(self, client: DBClient, collection_name: str):
        self.client = client
        self.collection = self.client.db[collection_name]

    async def create_document(self, doc: dict[str, any]) -> str:
        """
        Creates a new document in the collection.
        Returns the ID of the newly created document.
        """
        try:
            res = self.collection.insert_one(doc)
            return str(res.inserted_id)
        except PyMongoError as e:
            logger.error(f"Error creating document in '{self.collection.name}': {e}")
            raise

    async def update_document(self, query: dict[str, any], update_data: dict[str, any], unset_fields: list[str] | None = None, inc_data: dict[str, int] | None = None) -> int:
        """
        Updates a single document matching the query.
        Returns the number of matched documents, so a version field in the query
        turns this into a compare-and-swap.
        """
        update = {}
        if update_data:
            update["$set"] = update_data
        if unset_fields:
            update["$unset"] = {field: "" for field in unset_fields}
        if inc_data:
            update["$inc"] = inc_data
        if not update:
            return 0
        try:
            res = self.collection.update_one(query, update)
            return res.matched_count
        except PyMongoError as e:
            logger.error(f"Error updating document in '{self.collection.name}': {e}")
            raise

    async def increment(self, query: dict[str, any], field: str, amount: int) -> int:
        """
        Atomically adds 'amount' to 'field' on one document.
        Returns the number of matched documents.
        """
        try:
            res = self.collection.update_one(query, {"$inc": {field: amount}})
            return res.matched_count
        except PyMongoError as e:
            logger.error(f"Error incrementing '{field}' in '{self.collection.name}': {e}")
            raise

    async def find_and_update(self, query: dict[str, any], update_data: dict[str, any], return_document: ReturnDocument = ReturnDocument.AFTER) -> dict[str, any] | None:
        """
        Sets fields on one document and returns the document after the update
        (or before it, with ReturnDocument.BEFORE).
        """
        try:
            return self.collection.find_one_and_update(
                query, {"$set": update_data}, return_document=return_document
            )
        except PyMongoError as e:
            logger.error(f"Error updating document in '{self.collection.name}': {e}")
            raise

    async def add_to_set(self, query: dict[str, any], field: str, value: any) -> int:
        """
        Adds value to the array field unless it is already there.
        Returns the number of matched documents.
        """
        try:
            res = self.collection.update_one(query, {"$addToSet": {field: value}})
            return res.matched_count
        except PyMongoError as e:
            logger.error(f"Error updating '{field}' in '{self.collection.name}': {e}")
            raise

    async def read_document(self, query: dict[str, any]) -> dict[str, any] | None:
        """
        Reads a single document from the collection based on the query.
        Returns the document if found, otherwise None.
        """
        try:
            return self.collection.find_one(query)
        except PyMongoError as e:
            logger.error(f"Error reading document from '{self.collection.name}': {e}")
            raise

    async def read_documents(self, query: dict[str, any], limit: int = 0, skip: int = 0, sort: list[tuple[str, int]] | None = None, projection: dict[str, int] | None = None) -> list[dict[str, any]]:
        """
        Reads multiple documents from the collection based on the query.
        Returns a list of documents in storage order unless 'sort' is given.
        """
        try:
            cursor = self.collection.find(query, projection)
            if sort:
                cursor = cursor.sort(sort)
            if skip > 0:
                cursor = cursor.skip(skip)
            if limit > 0:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            logger.error(f"Error reading documents from '{self.collection.name}': {e}")
            raise

    async def count_documents(self, query: dict[str, any]) -> int:
        try:
            return self.collection.count_documents(query)
        except PyMongoError as e:
            logger.error(f"Error counting documents in '{self.collection.name}': {e}")
            raise

    async def delete_document(self, query: dict[str, any]) -> dict[str, any] | None:
        """
        Deletes a single document matching the query.
        Returns the deleted document, or None when nothing matched.
        """
        try:
            return self.collection.find_one_and_delete(query)
        except PyMongoError as e:
            logger.error(f"Error deleting document from '{self.collection.name}': {e}")
            raise

    async def doc_exists(self, query: dict[str, any]) -> bool:
        """
        Checks if a document exists in the collection based on the query.
        """
        return await self.read_document(query) is not None
