"""
Document store client.

Thin key-document layer over a MongoDB database. Every document is addressed
by a string key stored as ``_id``; callers see it as ``id``. pymongo failures
are re-raised as StoreError so the rest of the code never imports pymongo.
"""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings
from errors import StoreError

logger = logging.getLogger(__name__)

PRODUCTS = "products"
CARTS = "carts"
USERS = "users"
ACCOUNTS = "accounts"


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    # Convert ObjectId in nested fields if any
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
    return doc


def _strip_key(document: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in document.items() if k not in ("_id", "id")}


class DocumentStore:
    def __init__(self, db: Database, client: Optional[MongoClient] = None):
        self.db = db
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentStore":
        client = MongoClient(settings.database_url)
        return cls(client[settings.database_name], client)

    @property
    def name(self) -> str:
        return self.db.name

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        try:
            doc = self.db[collection].find_one({"_id": key})
        except PyMongoError as e:
            raise StoreError(f"get {collection}/{key} failed: {e}") from e
        return serialize_doc(doc)

    def set(self, collection: str, key: str, document: Dict[str, Any], merge: bool = False) -> None:
        body = _strip_key(document)
        try:
            if merge:
                self.db[collection].update_one({"_id": key}, {"$set": body}, upsert=True)
            else:
                self.db[collection].replace_one({"_id": key}, body, upsert=True)
        except PyMongoError as e:
            raise StoreError(f"set {collection}/{key} failed: {e}") from e

    def add(self, collection: str, document: Dict[str, Any]) -> str:
        key = str(ObjectId())
        body = _strip_key(document)
        body["_id"] = key
        try:
            self.db[collection].insert_one(body)
        except PyMongoError as e:
            raise StoreError(f"add to {collection} failed: {e}") from e
        return key

    def list_all(self, collection: str) -> List[Dict[str, Any]]:
        try:
            return [serialize_doc(d) for d in self.db[collection].find()]
        except PyMongoError as e:
            raise StoreError(f"list {collection} failed: {e}") from e

    def ping(self) -> bool:
        try:
            self.db.command("ping")
        except PyMongoError as e:
            raise StoreError(f"ping failed: {e}") from e
        return True

    def collection_names(self) -> List[str]:
        try:
            return self.db.list_collection_names()
        except PyMongoError as e:
            raise StoreError(f"listing collections failed: {e}") from e

    def close(self) -> None:
        if self._client is not None:
            logger.info("Closing document store client")
            self._client.close()
            self._client = None
