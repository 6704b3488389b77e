import logging
from typing import Any, Dict, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.errors import DuplicateRecordError
from app.db.mongo import REFRESH_TOKENS, collection, to_object_id
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


def save_refresh_token(doc: Dict[str, Any]) -> bool:
    try:
        collection(REFRESH_TOKENS).insert_one(doc)
        return True
    except DuplicateKeyError as e:
        raise DuplicateRecordError(str(e))
    except PyMongoError as e:
        logger.error(f"save_refresh_token failed: {e}")
        return False


def get_by_selector(selector: str) -> Optional[Dict[str, Any]]:
    try:
        return collection(REFRESH_TOKENS).find_one({"selector": selector})
    except PyMongoError as e:
        logger.error(f"get_by_selector failed: {e}")
        return None


def revoke(selector: str) -> bool:
    """Mark a token revoked; False when it was missing or already revoked."""
    try:
        result = collection(REFRESH_TOKENS).update_one(
            {"selector": selector, "revoked": False},
            {"$set": {"revoked": True, "revoked_at": utcnow()}},
        )
        return result.modified_count == 1
    except PyMongoError as e:
        logger.error(f"revoke refresh token failed: {e}")
        return False


def delete_for_user(user_id) -> int:
    try:
        return collection(REFRESH_TOKENS).delete_many({"user_id": to_object_id(user_id)}).deleted_count
    except PyMongoError as e:
        logger.error(f"delete refresh tokens failed: {e}")
        return 0
