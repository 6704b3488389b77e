import logging
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, UpdateOne
from pymongo.errors import PyMongoError

from app.db.mongo import BUDGETS, collection, to_object_id
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


def list_budgets(user_id) -> Optional[List[Dict[str, Any]]]:
    try:
        return list(
            collection(BUDGETS)
            .find({"user_id": to_object_id(user_id)})
            .sort("category", ASCENDING)
        )
    except PyMongoError as e:
        logger.error(f"list_budgets failed: {e}")
        return None


def upsert_budgets(user_id, monthly_cents_by_category: Dict[str, int]) -> bool:
    """One upsert per category, keyed on (user_id, category)."""
    if not monthly_cents_by_category:
        return True
    oid = to_object_id(user_id)
    now = utcnow()
    requests = [
        UpdateOne(
            {"user_id": oid, "category": category},
            {
                "$set": {"monthly_cents": cents, "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )
        for category, cents in monthly_cents_by_category.items()
    ]
    try:
        collection(BUDGETS).bulk_write(requests)
        return True
    except PyMongoError as e:
        logger.error(f"upsert_budgets failed: {e}")
        return False


def delete_for_user(user_id) -> int:
    try:
        return collection(BUDGETS).delete_many({"user_id": to_object_id(user_id)}).deleted_count
    except PyMongoError as e:
        logger.error(f"delete budgets failed: {e}")
        return 0
