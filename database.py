"""
MongoDB access for the Tamagotcho API.

`db` is None when DATABASE_URL / DATABASE_NAME are not set; callers check
for that the same way they would for a dead connection.
"""
from datetime import datetime, timezone
from typing import Any, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from errors import InvalidArgumentError
from settings import get_settings

_settings = get_settings()

client: Optional[MongoClient] = None
db: Optional[Database] = None

if _settings.database_url and _settings.database_name:
    client = MongoClient(_settings.database_url)
    db = client[_settings.database_name]


def utcnow() -> datetime:
    """Naive UTC, which is what pymongo hands back on reads."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise InvalidArgumentError("Invalid id", {"id": str(id_str)})


def _resolve(database: Optional[Database]) -> Database:
    target = database if database is not None else db
    if target is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return target


def create_document(collection_name: str, data: Union[BaseModel, dict], database: Optional[Database] = None) -> str:
    """Insert one document, stamping created_at/updated_at. Returns the new id as a string."""
    target = _resolve(database)
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude={"id"})
    else:
        data_dict = dict(data)
        data_dict.pop("id", None)

    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = target[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def ensure_indexes(database: Optional[Database] = None) -> None:
    target = _resolve(database)
    target.wallet.create_index([("owner_id", ASCENDING)], unique=True)
    target.xplevel.create_index([("level", ASCENDING)], unique=True)
    target.monster.create_index([("owner_id", ASCENDING)])
    target.dailyquest.create_index([("owner_id", ASCENDING), ("status", ASCENDING), ("expires_at", ASCENDING)])
    target.ownedaccessory.create_index([("owner_id", ASCENDING), ("accessory_id", ASCENDING)])
    target.ownedaccessory.create_index([("monster_id", ASCENDING), ("is_equipped", ASCENDING)])
    target.stripeevent.create_index([("event_id", ASCENDING)], unique=True)
