import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from app.core.config import settings

logger = logging.getLogger(__name__)

USERS = "users"
REFRESH_TOKENS = "refresh_tokens"
TRANSACTIONS = "transactions"
BUDGETS = "budgets"
BILLS = "bills"
RECURRING_EXPENSES = "recurring_expenses"
RULES = "rules"
EMAIL_VERIFICATIONS = "email_verifications"

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def get_db() -> Database:
    """Return the application database, connecting lazily on first use."""
    global _client, _db
    if _db is None:
        _client = MongoClient(settings.MONGODB_URI)
        _db = _client[settings.DB_NAME]
    return _db


def use_database(db: Optional[Database]) -> None:
    """Swap the database handle (tests pass a mongomock database)."""
    global _db
    _db = db


def close() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def collection(name: str):
    return get_db()[name]


def ping() -> bool:
    try:
        get_db().command("ping")
        return True
    except PyMongoError as e:
        logger.error(f"Mongo ping failed: {e}")
        return False


def ensure_indexes() -> None:
    db = get_db()

    users = db[USERS]
    users.create_index(
        [("provider", ASCENDING), ("provider_sub", ASCENDING)],
        name="uniq_provider_sub",
        unique=True,
        partialFilterExpression={"provider_sub": {"$exists": True}},
    )
    users.create_index([("email", ASCENDING)], name="email", sparse=True)

    refresh = db[REFRESH_TOKENS]
    refresh.create_index([("selector", ASCENDING)], name="uniq_selector", unique=True)
    refresh.create_index([("user_id", ASCENDING)], name="user_id")
    refresh.create_index([("expires_at", ASCENDING)], name="ttl_expires_at", expireAfterSeconds=0)

    transactions = db[TRANSACTIONS]
    transactions.create_index([("user_id", ASCENDING), ("date", DESCENDING)], name="user_date_desc")
    transactions.create_index(
        [("user_id", ASCENDING), ("dedupe_hash", ASCENDING)],
        name="user_dedupe_hash_unique",
        unique=True,
        partialFilterExpression={"dedupe_hash": {"$exists": True}},
    )

    db[BUDGETS].create_index(
        [("user_id", ASCENDING), ("category", ASCENDING)], name="user_category", unique=True
    )
    db[BILLS].create_index([("user_id", ASCENDING), ("name", ASCENDING)], name="user_name")
    db[RECURRING_EXPENSES].create_index(
        [("user_id", ASCENDING), ("name", ASCENDING)], name="user_name", unique=True
    )
    db[RECURRING_EXPENSES].create_index(
        [("user_id", ASCENDING), ("is_active", ASCENDING)], name="user_active"
    )
    db[RULES].create_index([("user_id", ASCENDING), ("order", ASCENDING)], name="user_order")
    db[EMAIL_VERIFICATIONS].create_index([("token", ASCENDING)], name="uniq_token", unique=True)
    logger.info("MongoDB indexes ensured")


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse a hex string into an ObjectId, returning None when malformed."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def iso(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 UTC without milliseconds, e.g. 2024-12-30T12:00:00Z."""
    if dt is None:
        return None
    return dt.replace(microsecond=0, tzinfo=None).isoformat() + "Z"


def serialize(obj: Any):
    """
    Recursively convert ObjectId and datetime values into JSON-friendly
    strings and rename `_id` to `id`.
    """
    if isinstance(obj, list):
        return [serialize(item) for item in obj]
    if isinstance(obj, dict):
        return {("id" if k == "_id" else k): serialize(v) for k, v in obj.items()}
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, datetime):
        return iso(obj)
    return obj
