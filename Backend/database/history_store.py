from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from loguru import logger
from pymongo import ASCENDING
from pymongo.collection import Collection

from config.settings import get_settings
from database.mongodb import MongoDB


class HistoryStore(Protocol):
    """Read-only view over persisted project history."""

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        ...

    def list_photos(self, project_id: str) -> List[Dict[str, Any]]:
        ...

    def list_interactions(self, project_id: str) -> List[Dict[str, Any]]:
        ...


class ProjectStore(HistoryStore, Protocol):
    """History store plus the writes the scoping service performs after an exchange."""

    def get_user_zip_code(self, project_id: str) -> Optional[str]:
        ...

    def record_interaction(
            self,
            project_id: str,
            interaction_type: str,
            user_input: Optional[str],
            ai_response: Optional[str],
            metadata: Dict[str, Any]
    ) -> None:
        ...

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> None:
        ...


def _object_id(project_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(project_id)
    except (InvalidId, TypeError):
        return None


class MongoProjectStore:
    """MongoDB-backed project, photo and interaction history."""

    def __init__(self, mongodb: MongoDB):
        settings = get_settings()
        self.project_collection: Collection = mongodb.get_collection(settings.PROJECT_COLLECTION_NAME)
        self.photo_collection: Collection = mongodb.get_collection(settings.PROJECT_PHOTOS_COLLECTION_NAME)
        self.interaction_collection: Collection = mongodb.get_collection(settings.INTERACTIONS_COLLECTION_NAME)
        self.user_collection: Collection = mongodb.get_collection(settings.USER_COLLECTION_NAME)

    def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        object_id = _object_id(project_id)
        if object_id is None:
            return None
        return self.project_collection.find_one({"_id": object_id})

    def list_photos(self, project_id: str) -> List[Dict[str, Any]]:
        cursor = self.photo_collection.find({"project_id": project_id}).sort("photo_order", ASCENDING)
        return list(cursor)

    def list_interactions(self, project_id: str) -> List[Dict[str, Any]]:
        cursor = self.interaction_collection.find({"project_id": project_id}).sort("created_at", ASCENDING)
        return list(cursor)

    def get_user_zip_code(self, project_id: str) -> Optional[str]:
        project = self.get_project(project_id)
        if not project or not project.get("userId"):
            return None

        user_id = _object_id(project["userId"])
        if user_id is None:
            return None

        user = self.user_collection.find_one({"_id": user_id}, {"zip_code": 1})
        return user.get("zip_code") if user else None

    def record_interaction(
            self,
            project_id: str,
            interaction_type: str,
            user_input: Optional[str],
            ai_response: Optional[str],
            metadata: Dict[str, Any]
    ) -> None:
        self.interaction_collection.insert_one({
            "project_id": project_id,
            "type": interaction_type,
            "user_input": user_input,
            "ai_response": ai_response,
            "metadata": metadata,
            "created_at": datetime.now(timezone.utc),
        })
        logger.debug(f"Recorded {interaction_type} interaction for project {project_id}")

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> None:
        object_id = _object_id(project_id)
        if object_id is None:
            logger.warning(f"Refusing to update project with malformed id: {project_id}")
            return

        result = self.project_collection.update_one(
            {"_id": object_id},
            {"$set": {**fields, "updated_at": datetime.now(timezone.utc)}}
        )
        if result.matched_count == 0:
            logger.warning(f"Project {project_id} not found, update skipped")
