import logging
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.db.mongo import BILLS, collection, to_object_id
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


def list_bills(user_id) -> Optional[List[Dict[str, Any]]]:
    """Active bills first, then by name."""
    try:
        bills = list(collection(BILLS).find({"user_id": to_object_id(user_id)}))
    except PyMongoError as e:
        logger.error(f"list_bills failed: {e}")
        return None
    return sorted(bills, key=lambda b: (not b.get("is_active", True), (b.get("name") or "").lower()))


def create_bill(user_id, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    now = utcnow()
    doc = {**fields, "user_id": to_object_id(user_id), "created_at": now, "updated_at": now}
    try:
        doc["_id"] = collection(BILLS).insert_one(doc).inserted_id
        return doc
    except PyMongoError as e:
        logger.error(f"create_bill failed: {e}")
        return None


def update_bill(user_id, bill_id, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        return collection(BILLS).find_one_and_update(
            {"_id": to_object_id(bill_id), "user_id": to_object_id(user_id)},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        logger.error(f"update_bill failed: {e}")
        return None


def delete_bill(user_id, bill_id) -> bool:
    try:
        result = collection(BILLS).delete_one({"_id": to_object_id(bill_id), "user_id": to_object_id(user_id)})
        return result.deleted_count == 1
    except PyMongoError as e:
        logger.error(f"delete_bill failed: {e}")
        return False


def delete_for_user(user_id) -> int:
    try:
        return collection(BILLS).delete_many({"user_id": to_object_id(user_id)}).deleted_count
    except PyMongoError as e:
        logger.error(f"delete bills failed: {e}")
        return 0
