from pymongo import ASCENDING
from pymongo.mongo_client import MongoClient
from pymongo.server_api import ServerApi
from pymongo.errors import PyMongoError
import logging, os, constants

logger = logging.getLogger(__name__)

class DBClient:
    _instance = None

    def __init__(self, uri: str = "uri", db_name: str = "db_name", client=None):
        if DBClient._instance is not None:
            raise Exception("this is a singleton class")

        if client is None:
            use_tls = os.getenv("MONGO_TLS", "false").lower() == "true"
            client = MongoClient(
                uri,
                tls=use_tls,
                tlsAllowInvalidCertificates=use_tls,
                server_api=ServerApi('1'),
                serverSelectionTimeoutMS=int(os.getenv("MONGO_TIMEOUT_MS", "5000")),
            )
            try:
                client.admin.command('ping')
                logger.info("Pinged your deployment. You successfully connected to MongoDB!")
            except PyMongoError as e:
                logger.error(f"MongoDB ping failed: {e}")

        self.client = client
        self.db = self.client[db_name]
        DBClient._instance = self

    @staticmethod
    def get_instance(uri: str = "uri", db_name: str = "db_name", client=None):
        if DBClient._instance is None:
            DBClient(uri, db_name, client)
        return DBClient._instance

    def ensure_indexes(self):
        books = self.db[constants.BOOKS_COLLECTION]
        books.create_index([("user_id", ASCENDING), ("status", ASCENDING)])
        # isbn and google_books_id are only stored when present
        books.create_index(
            "isbn",
            unique=True,
            partialFilterExpression={"isbn": {"$exists": True}},
        )
        books.create_index(
            "google_books_id",
            unique=True,
            partialFilterExpression={"google_books_id": {"$exists": True}},
        )

        users = self.db[constants.USERS_COLLECTION]
        users.create_index("username", unique=True)
        users.create_index("email", unique=True)
        logger.info("MongoDB indexes ensured")

    def close(self):
        logger.info("closing db connection")
        self.client.close()
        DBClient._instance = None
