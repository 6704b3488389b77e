import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ASCENDING, DESCENDING, UpdateOne
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.errors import DuplicateRecordError
from app.db.mongo import TRANSACTIONS, collection, to_object_id
from app.utils.dates import parse_datetime, utcnow

logger = logging.getLogger(__name__)


def _owned(user_id, tx_id=None) -> Dict[str, Any]:
    query: Dict[str, Any] = {"user_id": to_object_id(user_id)}
    if tx_id is not None:
        query["_id"] = to_object_id(tx_id)
    return query


def insert_transaction(user_id, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    now = utcnow()
    doc = {**fields, "user_id": to_object_id(user_id), "created_at": now, "updated_at": now}
    doc.setdefault("tags", [])
    if doc.get("note") is None:
        doc.pop("note", None)
    try:
        result = collection(TRANSACTIONS).insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc
    except DuplicateKeyError as e:
        raise DuplicateRecordError(str(e))
    except PyMongoError as e:
        logger.error(f"insert_transaction failed: {e}")
        return None


def list_transactions(user_id, limit: int, skip: int) -> Optional[List[Dict[str, Any]]]:
    try:
        cursor = (
            collection(TRANSACTIONS)
            .find(_owned(user_id))
            .sort([("date", DESCENDING), ("_id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        return list(cursor)
    except PyMongoError as e:
        logger.error(f"list_transactions failed: {e}")
        return None


def get_transaction(user_id, tx_id) -> Optional[Dict[str, Any]]:
    try:
        return collection(TRANSACTIONS).find_one(_owned(user_id, tx_id))
    except PyMongoError as e:
        logger.error(f"get_transaction failed: {e}")
        return None


def update_transaction(user_id, tx_id, fields: Dict[str, Any], unset: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    update: Dict[str, Any] = {"$set": {**fields, "updated_at": utcnow()}}
    unset = [name for name in unset if name not in fields]
    if unset:
        update["$unset"] = {name: "" for name in unset}
    try:
        result = collection(TRANSACTIONS).update_one(_owned(user_id, tx_id), update)
        if result.matched_count == 0:
            return None
        return collection(TRANSACTIONS).find_one(_owned(user_id, tx_id))
    except DuplicateKeyError as e:
        raise DuplicateRecordError(str(e))
    except PyMongoError as e:
        logger.error(f"update_transaction failed: {e}")
        return None


def delete_transaction(user_id, tx_id) -> bool:
    try:
        return collection(TRANSACTIONS).delete_one(_owned(user_id, tx_id)).deleted_count == 1
    except PyMongoError as e:
        logger.error(f"delete_transaction failed: {e}")
        return False


def delete_transactions(user_id, tx_ids: List[Any]) -> Optional[int]:
    ids = [oid for oid in (to_object_id(i) for i in tx_ids) if oid is not None]
    if not ids:
        return 0
    try:
        return collection(TRANSACTIONS).delete_many(
            {"user_id": to_object_id(user_id), "_id": {"$in": ids}}
        ).deleted_count
    except PyMongoError as e:
        logger.error(f"delete_transactions failed: {e}")
        return None


def clear_transactions(user_id) -> Optional[int]:
    try:
        return collection(TRANSACTIONS).delete_many(_owned(user_id)).deleted_count
    except PyMongoError as e:
        logger.error(f"clear_transactions failed: {e}")
        return None


def find_transactions(user_id, query: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """All matching transactions for the user, oldest first."""
    try:
        return list(
            collection(TRANSACTIONS)
            .find({**(query or {}), **_owned(user_id)})
            .sort([("date", ASCENDING), ("_id", ASCENDING)])
        )
    except PyMongoError as e:
        logger.error(f"find_transactions failed: {e}")
        return []


def find_in_range(user_id, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    return find_transactions(user_id, {"date": {"$gte": start, "$lt": end}})


def build_export_query(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    category: Optional[str] = None,
    tx_type: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Filters for summary/export. end_date is inclusive: a bare date
    (YYYY-MM-DD) covers the whole day. "all" disables a filter.
    """
    query: Dict[str, Any] = {}
    date_filter: Dict[str, Any] = {}
    start = parse_datetime(start_date) if start_date else None
    if start is not None:
        date_filter["$gte"] = start
    end = parse_datetime(end_date) if end_date else None
    if end is not None:
        if len(end_date.strip()) == 10:
            date_filter["$lt"] = end + timedelta(days=1)
        else:
            date_filter["$lte"] = end
    if date_filter:
        query["date"] = date_filter
    if category and category != "all":
        query["category"] = category
    if tx_type and tx_type != "all":
        query["type"] = tx_type
    return query


def apply_updates(updates: Dict[Any, Dict[str, Any]]) -> int:
    """Bulk $set keyed by transaction _id; returns the modified count."""
    if not updates:
        return 0
    now = utcnow()
    requests = [
        UpdateOne({"_id": tx_id}, {"$set": {**fields, "updated_at": now}})
        for tx_id, fields in updates.items()
    ]
    try:
        return collection(TRANSACTIONS).bulk_write(requests).modified_count
    except PyMongoError as e:
        logger.error(f"apply_updates failed: {e}")
        return 0


def set_category_for_notes(user_id, notes: List[str], category: str) -> int:
    """Recategorise every transaction whose trimmed note matches one of `notes`, ignoring case."""
    wanted = {n.strip().lower() for n in notes if isinstance(n, str) and n.strip()}
    matching = [
        tx for tx in find_transactions(user_id, {"note": {"$exists": True}})
        if (tx.get("note") or "").strip().lower() in wanted and tx.get("category") != category
    ]
    return apply_updates({tx["_id"]: {"category": category} for tx in matching})


def flag_anomalies(user_id, tx_ids: List[Any]) -> int:
    ids = [oid for oid in (to_object_id(i) for i in tx_ids) if oid is not None]
    if not ids:
        return 0
    try:
        return collection(TRANSACTIONS).update_many(
            {"user_id": to_object_id(user_id), "_id": {"$in": ids}},
            {"$set": {"anomaly_flagged": True, "updated_at": utcnow()}},
        ).modified_count
    except PyMongoError as e:
        logger.error(f"flag_anomalies failed: {e}")
        return 0


def link_to_recurring(tx_ids: List[Any], recurring_id) -> int:
    if not tx_ids:
        return 0
    try:
        return collection(TRANSACTIONS).update_many(
            {"_id": {"$in": list(tx_ids)}},
            {"$set": {"recurring_expense_id": recurring_id, "is_recurring": True, "updated_at": utcnow()}},
        ).modified_count
    except PyMongoError as e:
        logger.error(f"link_to_recurring failed: {e}")
        return 0


def delete_for_user(user_id) -> int:
    return clear_transactions(user_id) or 0
