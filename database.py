"""
Database Helper Functions

MongoDB helpers used by the services. A single Store wraps the pymongo
database handle created at start-up; nothing here opens a connection on import.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Union, Optional, Dict, Any, List

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, TEXT, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings
from errors import DuplicateEmail

logger = logging.getLogger(__name__)

USERS = "user"
VENDORS = "vendor"
RESTAURANTS = "restaurant"
ITEMS = "item"
PACKAGES = "package"


def connect(settings: Settings) -> Optional[Database]:
    if not (settings.database_url and settings.database_name):
        logger.warning("DATABASE_URL or DATABASE_NAME not set, database unavailable")
        return None
    client = MongoClient(
        settings.database_url,
        serverSelectionTimeoutMS=settings.mongo_timeout_ms,
        socketTimeoutMS=settings.mongo_timeout_ms,
    )
    logger.info("Connected to MongoDB database %s", settings.database_name)
    return client[settings.database_name]


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="python")
    return dict(data)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class Store:
    def __init__(self, db: Database, use_transactions: bool = False):
        self.db = db
        self.use_transactions = use_transactions

    def ensure_indexes(self, full_text_search: bool = True) -> None:
        self.db[USERS].create_index([("email", ASCENDING)], unique=True)
        self.db[VENDORS].create_index([("email", ASCENDING)], unique=True)
        self.db[RESTAURANTS].create_index([("vendor_id", ASCENDING)], unique=True)
        self.db[ITEMS].create_index([("vendor_id", ASCENDING)])
        self.db[PACKAGES].create_index([("vendor_id", ASCENDING)])
        if full_text_search:
            self.db[ITEMS].create_index([("name", TEXT), ("description", TEXT)])

    # CRUD helpers

    def create_document(self, collection_name: str, data: Union[BaseModel, dict], session=None) -> dict:
        payload = _to_dict(data)
        now = datetime.now(timezone.utc)
        payload["created_at"] = now
        payload["updated_at"] = now
        result = self.db[collection_name].insert_one(payload, session=session)
        payload["_id"] = result.inserted_id
        return payload

    def create_principal(self, collection_name: str, data: Union[BaseModel, dict]) -> dict:
        """Insert relying on the unique email index so concurrent duplicates fail here."""
        try:
            return self.create_document(collection_name, data)
        except DuplicateKeyError:
            raise DuplicateEmail("Account already exists")

    def find_one(self, collection_name: str, filter_dict: dict) -> Optional[dict]:
        return self.db[collection_name].find_one(filter_dict)

    def get_document_by_id(self, collection_name: str, _id: Any, **scope) -> Optional[dict]:
        oid = to_object_id(_id)
        if oid is None:
            return None
        return self.db[collection_name].find_one({"_id": oid, **scope})

    def get_documents(self, collection_name: str, filter_dict: Optional[dict] = None,
                      limit: Optional[int] = None, sort: Optional[list] = None,
                      projection: Optional[dict] = None) -> List[dict]:
        cursor = self.db[collection_name].find(filter_dict or {}, projection)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(int(limit))
        return list(cursor)

    def update_document(self, collection_name: str, filter_dict: dict, update_data: Dict[str, Any],
                        unset: Optional[List[str]] = None) -> Optional[dict]:
        """Apply $set (and optional $unset) to one document and return the updated copy."""
        update = {"$set": _to_dict(update_data)}
        update["$set"]["updated_at"] = datetime.now(timezone.utc)
        if unset:
            update["$unset"] = {field: "" for field in unset}
        return self.db[collection_name].find_one_and_update(
            filter_dict, update, return_document=ReturnDocument.AFTER)

    def delete_document(self, collection_name: str, filter_dict: dict, session=None) -> bool:
        result = self.db[collection_name].delete_one(filter_dict, session=session)
        return result.deleted_count > 0

    def delete_documents(self, collection_name: str, filter_dict: dict, session=None) -> int:
        result = self.db[collection_name].delete_many(filter_dict, session=session)
        return result.deleted_count

    def count_documents(self, collection_name: str, filter_dict: Optional[dict] = None) -> int:
        return self.db[collection_name].count_documents(filter_dict or {})

    def count_by(self, collection_name: str, key: str) -> Dict[str, int]:
        pipeline = [{"$group": {"_id": f"${key}", "count": {"$sum": 1}}}]
        return {row["_id"]: row["count"] for row in self.db[collection_name].aggregate(pipeline)}

    @contextmanager
    def transaction(self):
        """Yield a session inside a transaction, or None when transactions are off."""
        if not self.use_transactions:
            yield None
            return
        with self.db.client.start_session() as session:
            with session.start_transaction():
                yield session


# Utility

def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = {}
    for key, value in doc.items():
        if isinstance(value, ObjectId):
            value = str(value)
        elif isinstance(value, list):
            value = [str(v) if isinstance(v, ObjectId) else serialize_doc(v) if isinstance(v, dict) else v
                     for v in value]
        elif isinstance(value, datetime):
            value = value.isoformat()
        d[key] = value
    if "_id" in d:
        d["id"] = d.pop("_id")
    return d
