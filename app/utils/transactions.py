import math
import re
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.db.mongo import iso
from app.utils.dates import parse_datetime, utcnow
from app.utils.insights import tx_amount

TRANSACTION_TYPES = ("expense", "income")
MAX_TAGS = 20
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class TransactionValidationError(ValueError):
    """Carries the API error code for a rejected transaction payload."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


def clean_tags(tags: Any) -> Optional[List[str]]:
    if not isinstance(tags, list):
        return None
    return [t for t in tags if isinstance(t, str) and t.strip()][:MAX_TAGS]


def validate_transaction(
    payload: Dict[str, Any], now: Optional[datetime] = None, is_update: bool = False
) -> Dict[str, Any]:
    """
    Validate a create/update body and return the fields to store.
    Raises TransactionValidationError with bad_type, bad_amount,
    bad_category or bad_date.

    An update without a date keeps the stored one, and never changes
    the dedupe hash.
    """
    tx_type = payload.get("type")
    if tx_type not in TRANSACTION_TYPES:
        raise TransactionValidationError("bad_type")

    amount = payload.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount):
        raise TransactionValidationError("bad_amount")

    category = payload.get("category")
    if not isinstance(category, str) or not category.strip():
        raise TransactionValidationError("bad_category")

    raw_date = payload.get("date")
    if raw_date in (None, ""):
        date = None if is_update else (now or utcnow())
    else:
        date = parse_datetime(raw_date)
        if date is None:
            raise TransactionValidationError("bad_date")

    cents = int(round(amount * 100))
    note = payload.get("note")
    fields: Dict[str, Any] = {
        "type": tx_type,
        "amount_cents": cents,
        "amount": cents / 100,
        "category": category.strip(),
        "note": note.strip() if isinstance(note, str) and note.strip() else None,
    }
    if date is not None:
        fields["date"] = date

    tags = clean_tags(payload.get("tags"))
    if tags is not None:
        fields["tags"] = tags

    dedupe_hash = None if is_update else payload.get("dedupe_hash")
    if isinstance(dedupe_hash, str) and dedupe_hash.strip():
        fields["dedupe_hash"] = dedupe_hash.strip()
    return fields


def parse_page(limit: Any, skip: Any) -> tuple:
    """(limit, skip) with limit defaulting to 20, capped at 100, and skip >= 0."""
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = DEFAULT_PAGE_SIZE
    if limit <= 0:
        limit = DEFAULT_PAGE_SIZE
    try:
        skip = int(skip)
    except (TypeError, ValueError):
        skip = 0
    return min(limit, MAX_PAGE_SIZE), max(skip, 0)


def to_public(doc: Dict[str, Any]) -> Dict[str, Any]:
    data = {
        "id": str(doc["_id"]),
        "type": doc.get("type"),
        "amount": tx_amount(doc),
        "category": doc.get("category"),
        "note": doc.get("note"),
        "tags": doc.get("tags") or [],
        "date": iso(doc.get("date")),
    }
    if doc.get("receipt_url"):
        data["receipt_url"] = doc["receipt_url"]
    if doc.get("recurring_expense_id"):
        data["recurring_expense_id"] = str(doc["recurring_expense_id"])
        data["is_recurring"] = bool(doc.get("is_recurring"))
    if doc.get("anomaly_flagged"):
        data["anomaly_flagged"] = True
    return data


_WHITESPACE = re.compile(r"\s+")


def duplicate_key(doc: Dict[str, Any]) -> str:
    note = _WHITESPACE.sub(" ", str(doc.get("note") or "").lower()).strip()
    return f"{doc['date'].date().isoformat()}|{tx_amount(doc):.2f}|{note}"


def duplicate_groups(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Groups of two or more transactions with the same day, amount and note."""
    groups: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for doc in docs:
        if not isinstance(doc.get("date"), datetime):
            continue
        groups.setdefault(duplicate_key(doc), []).append({
            "id": str(doc["_id"]),
            "date": iso(doc["date"]),
            "amount": tx_amount(doc),
            "note": doc.get("note") or "",
        })
    return [{"key": key, "items": items} for key, items in groups.items() if len(items) > 1]
