"""
MongoDB access helpers

The client is created lazily by pymongo, so building it never blocks startup;
`ping` is what actually reaches the server.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url:
        logger.error("DATABASE_URL is not set; database features are unavailable")
        return None
    try:
        client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000)
    except PyMongoError as exc:
        logger.error("MongoDB connection error: %s", exc)
        return None
    return client[settings.database_name]


def ping(db: Optional[Database]) -> bool:
    if db is None:
        return False
    try:
        db.command("ping")
    except Exception as exc:
        logger.error("MongoDB connection error: %s", exc)
        return False
    logger.info("MongoDB connected (%s)", db.name)
    return True


def object_id(id_str: str) -> Optional[ObjectId]:
    """Parse a public id; None when the string cannot be an ObjectId."""
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        return None


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        # Only unset top-level fields are omitted; nested nulls (cart extras) are kept.
        data_dict = {k: v for k, v in data.model_dump(by_alias=True).items() if v is not None}
    else:
        data_dict = data.copy()
    now = datetime.now(timezone.utc)
    data_dict["createdAt"] = now
    data_dict["updatedAt"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
    limit: Optional[int] = None,
) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_public_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            d[k] = v.isoformat()
        elif isinstance(v, ObjectId):
            d[k] = str(v)
    return d
