from typing import Optional

from loguru import logger
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, PyMongoError

from config.settings import get_settings


class MongoDB:
    """Lazily connected client shared by the stores of one process."""

    def __init__(self):
        self._client: Optional[MongoClient] = None
        self._db: Optional[Database] = None

    def initialize(self):
        settings = get_settings()
        try:
            self._client = MongoClient(
                settings.MONGODB_URI,
                appname=settings.APP_NAME,
                serverSelectionTimeoutMS=settings.MONGODB_TIMEOUT_MS
            )
            self._db = self._client.get_database(settings.MONGODB_DATABASE)
        except ConnectionFailure as e:
            raise RuntimeError(f"Connection Failure: {str(e)}")

        logger.info(f"MongoDB client created for database: {settings.MONGODB_DATABASE}")

    def close(self):
        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._db = None
        logger.info("MongoDB connection closed.")

    def get_database(self) -> Database:
        if self._db is None:
            self.initialize()
        return self._db

    def get_collection(self, collection_name: str) -> Collection:
        return self.get_database()[collection_name]

    def ensure_indexes(self):
        """Create the indexes the history reads sort on. Failures are logged, not raised."""
        settings = get_settings()
        indexes = {
            settings.INTERACTIONS_COLLECTION_NAME: [("project_id", ASCENDING), ("created_at", ASCENDING)],
            settings.PROJECT_PHOTOS_COLLECTION_NAME: [("project_id", ASCENDING), ("photo_order", ASCENDING)],
        }
        for collection_name, keys in indexes.items():
            try:
                self.get_collection(collection_name).create_index(keys)
            except PyMongoError as e:
                logger.warning(f"Could not ensure index on {collection_name}: {e}")


mongodb = MongoDB()
