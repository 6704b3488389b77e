import logging
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.errors import DuplicateRecordError
from app.db.mongo import EMAIL_VERIFICATIONS, USERS, collection, to_object_id
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    return email.strip().lower() if email else None


def get_user_by_id(user_id) -> Optional[Dict[str, Any]]:
    oid = to_object_id(user_id)
    if oid is None:
        return None
    try:
        return collection(USERS).find_one({"_id": oid})
    except PyMongoError as e:
        logger.error(f"get_user_by_id failed: {e}")
        return None


def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    """Any account (password or provider) registered with this email."""
    try:
        return collection(USERS).find_one({"email": normalize_email(email)})
    except PyMongoError as e:
        logger.error(f"get_user_by_email failed: {e}")
        return None


def create_user(user: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    now = utcnow()
    doc = {
        "roles": ["user"],
        "token_version": 1,
        "created_at": now,
        "updated_at": now,
        **user,
    }
    doc["email"] = normalize_email(doc.get("email"))
    try:
        result = collection(USERS).insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc
    except DuplicateKeyError as e:
        raise DuplicateRecordError(str(e))
    except PyMongoError as e:
        logger.error(f"create_user failed: {e}")
        return None


def update_user(user_id, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """$set the given fields and return the updated document."""
    oid = to_object_id(user_id)
    if oid is None:
        return None
    try:
        return collection(USERS).find_one_and_update(
            {"_id": oid},
            {"$set": {**fields, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError as e:
        raise DuplicateRecordError(str(e))
    except PyMongoError as e:
        logger.error(f"update_user failed: {e}")
        return None


def upsert_provider_user(provider: str, sub: str, email: Optional[str], name: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Find the account for an Apple/Google identity: by (provider, sub) first,
    then by email (linking the identity to it), otherwise create one.
    """
    email = normalize_email(email)
    try:
        users = collection(USERS)
        user = users.find_one({"provider": provider, "provider_sub": sub})
        if user:
            updates = {}
            if email and user.get("email") != email:
                updates["email"] = email
            if name and not user.get("name"):
                updates["name"] = name
            return update_user(user["_id"], updates) if updates else user

        if email:
            user = users.find_one({"email": email})
            if user:
                logger.info(f"Linking {provider} identity to existing user {user['_id']}")
                return update_user(user["_id"], {
                    "provider": provider,
                    "provider_sub": sub,
                    "name": user.get("name") or name,
                })

        return create_user({"provider": provider, "provider_sub": sub, "email": email, "name": name})
    except PyMongoError as e:
        logger.error(f"upsert_provider_user failed: {e}")
        return None


def delete_user(user_id) -> bool:
    oid = to_object_id(user_id)
    if oid is None:
        return False
    try:
        collection(EMAIL_VERIFICATIONS).delete_many({"user_id": oid})
        return collection(USERS).delete_one({"_id": oid}).deleted_count == 1
    except PyMongoError as e:
        logger.error(f"delete_user failed: {e}")
        return False


def list_user_ids() -> List[str]:
    try:
        return [str(doc["_id"]) for doc in collection(USERS).find({}, {"_id": 1})]
    except PyMongoError as e:
        logger.error(f"list_user_ids failed: {e}")
        return []


# Email change verification

def create_email_verification(doc: Dict[str, Any]) -> bool:
    try:
        collection(EMAIL_VERIFICATIONS).insert_one(doc)
        return True
    except PyMongoError as e:
        logger.error(f"create_email_verification failed: {e}")
        return False


def get_email_verification(token: str) -> Optional[Dict[str, Any]]:
    try:
        return collection(EMAIL_VERIFICATIONS).find_one({"token": token})
    except PyMongoError as e:
        logger.error(f"get_email_verification failed: {e}")
        return None


def mark_email_verification_used(verification_id) -> bool:
    try:
        result = collection(EMAIL_VERIFICATIONS).update_one(
            {"_id": verification_id},
            {"$set": {"used": True, "used_at": utcnow()}},
        )
        return result.modified_count == 1
    except PyMongoError as e:
        logger.error(f"mark_email_verification_used failed: {e}")
        return False
