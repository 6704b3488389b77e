import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from app.db import transactions as transactions_db
from app.db.mongo import RECURRING_EXPENSES, TRANSACTIONS, collection, to_object_id
from app.utils.dates import utcnow
from app.utils.recurring import detect_recurring, matches_recurring

logger = logging.getLogger(__name__)


def list_active(user_id) -> Optional[List[Dict[str, Any]]]:
    try:
        return list(
            collection(RECURRING_EXPENSES)
            .find({"user_id": to_object_id(user_id), "is_active": True})
            .sort("last_seen", DESCENDING)
        )
    except PyMongoError as e:
        logger.error(f"list recurring expenses failed: {e}")
        return None


def get_recurring(user_id, recurring_id) -> Optional[Dict[str, Any]]:
    try:
        return collection(RECURRING_EXPENSES).find_one(
            {"_id": to_object_id(recurring_id), "user_id": to_object_id(user_id)}
        )
    except PyMongoError as e:
        logger.error(f"get_recurring failed: {e}")
        return None


def list_linked_transactions(user_id, recurring_id) -> List[Dict[str, Any]]:
    try:
        return list(
            collection(TRANSACTIONS)
            .find({"user_id": to_object_id(user_id), "recurring_expense_id": to_object_id(recurring_id)})
            .sort("date", DESCENDING)
        )
    except PyMongoError as e:
        logger.error(f"list_linked_transactions failed: {e}")
        return []


def toggle(user_id, recurring_id) -> Optional[Dict[str, Any]]:
    current = get_recurring(user_id, recurring_id)
    if current is None:
        return None
    try:
        return collection(RECURRING_EXPENSES).find_one_and_update(
            {"_id": current["_id"]},
            {"$set": {"is_active": not current.get("is_active", True), "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        logger.error(f"toggle recurring failed: {e}")
        return None


def upsert_recurring(user_id, document: Dict[str, Any]) -> Optional[Any]:
    """Insert or refresh the recurring expense keyed on (user_id, name); returns its _id."""
    now = utcnow()
    try:
        result = collection(RECURRING_EXPENSES).find_one_and_update(
            {"user_id": to_object_id(user_id), "name": document["name"]},
            {"$set": {**document, "updated_at": now}, "$setOnInsert": {"created_at": now}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return result["_id"]
    except PyMongoError as e:
        logger.error(f"upsert_recurring failed: {e}")
        return None


def link_unmatched(user_id, now: datetime) -> int:
    """Attach still-unlinked expenses to an active recurring expense they match."""
    active = list_active(user_id) or []
    linked = 0
    for tx in transactions_db.find_transactions(user_id, {"type": "expense", "recurring_expense_id": None}):
        for rec in active:
            if not matches_recurring(tx, rec):
                continue
            transactions_db.link_to_recurring([tx["_id"]], rec["_id"])
            try:
                collection(RECURRING_EXPENSES).update_one(
                    {"_id": rec["_id"]},
                    {
                        "$max": {"last_seen": tx["date"]},
                        "$inc": {"occurrence_count": 1},
                        "$set": {"updated_at": now},
                    },
                )
            except PyMongoError as e:
                logger.error(f"updating recurring stats failed: {e}")
            linked += 1
            break
    return linked


def run_detection(user_id, now: Optional[datetime] = None) -> Dict[str, int]:
    """Detect recurring groups for one user, upsert them and link their transactions."""
    now = now or utcnow()
    expenses = transactions_db.find_transactions(user_id, {"type": "expense"})
    candidates = detect_recurring(expenses, now)

    upserted = 0
    linked = 0
    for candidate in candidates:
        recurring_id = upsert_recurring(user_id, candidate.to_document())
        if recurring_id is None:
            continue
        upserted += 1
        linked += transactions_db.link_to_recurring([tx["_id"] for tx in candidate.transactions], recurring_id)

    linked += link_unmatched(user_id, now)
    logger.info(f"Recurring detection for user {user_id}: {upserted} recurring expenses, {linked} links")
    return {"detected": upserted, "linked_transactions": linked}


def delete_for_user(user_id) -> int:
    try:
        return collection(RECURRING_EXPENSES).delete_many({"user_id": to_object_id(user_id)}).deleted_count
    except PyMongoError as e:
        logger.error(f"delete recurring expenses failed: {e}")
        return 0
