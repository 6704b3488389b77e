import logging
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.db.mongo import RULES, collection, to_object_id
from app.utils.dates import utcnow
from app.utils.rules import sort_rules

logger = logging.getLogger(__name__)


def list_rules(user_id, enabled_only: bool = False) -> Optional[List[Dict[str, Any]]]:
    """Rules in evaluation order (order, created_at)."""
    query: Dict[str, Any] = {"user_id": to_object_id(user_id)}
    if enabled_only:
        query["enabled"] = True
    try:
        return sort_rules(collection(RULES).find(query))
    except PyMongoError as e:
        logger.error(f"list_rules failed: {e}")
        return None


def create_rule(user_id, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    now = utcnow()
    doc = {**fields, "user_id": to_object_id(user_id), "created_at": now, "updated_at": now}
    try:
        doc["_id"] = collection(RULES).insert_one(doc).inserted_id
        return doc
    except PyMongoError as e:
        logger.error(f"create_rule failed: {e}")
        return None


def update_rule(user_id, rule_id, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        return collection(RULES).find_one_and_update(
            {"_id": to_object_id(rule_id), "user_id": to_object_id(user_id)},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        logger.error(f"update_rule failed: {e}")
        return None


def delete_rule(user_id, rule_id) -> bool:
    try:
        result = collection(RULES).delete_one({"_id": to_object_id(rule_id), "user_id": to_object_id(user_id)})
        return result.deleted_count == 1
    except PyMongoError as e:
        logger.error(f"delete_rule failed: {e}")
        return False


def delete_for_user(user_id) -> int:
    try:
        return collection(RULES).delete_many({"user_id": to_object_id(user_id)}).deleted_count
    except PyMongoError as e:
        logger.error(f"delete rules failed: {e}")
        return 0
