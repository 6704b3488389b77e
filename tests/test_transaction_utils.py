from datetime import datetime

import pytest
from bson import ObjectId

from app.utils.transactions import (
    TransactionValidationError,
    duplicate_groups,
    parse_page,
    to_public,
    validate_transaction,
)

NOW = datetime(2025, 11, 1, 12, 0)


def _code(payload):
    with pytest.raises(TransactionValidationError) as exc:
        validate_transaction(payload, NOW)
    return exc.value.code


def test_validate_transaction_fields():
    fields = validate_transaction(
        {"type": "expense", "amount": 12.349, "category": " Food ", "note": "  ", "date": "2025-10-30T10:00:00Z",
         "tags": ["a", "", 3, "b"], "dedupe_hash": " h1 "},
        NOW,
    )
    assert fields == {
        "type": "expense",
        "amount_cents": 1235,
        "amount": 12.35,
        "category": "Food",
        "note": None,
        "date": datetime(2025, 10, 30, 10, 0),
        "tags": ["a", "b"],
        "dedupe_hash": "h1",
    }


def test_validate_transaction_defaults_date_to_now():
    fields = validate_transaction({"type": "income", "amount": 10, "category": "Gift"}, NOW)
    assert fields["date"] == NOW
    assert "tags" not in fields


def test_validate_update_leaves_date_and_hash_alone():
    fields = validate_transaction(
        {"type": "expense", "amount": 5, "category": "Food", "dedupe_hash": "h2"}, NOW, is_update=True
    )
    assert "date" not in fields
    assert "dedupe_hash" not in fields

    fields = validate_transaction(
        {"type": "expense", "amount": 5, "category": "Food", "date": "2025-10-02T00:00:00Z"}, NOW, is_update=True
    )
    assert fields["date"] == datetime(2025, 10, 2)


def test_validate_transaction_offsets_become_utc():
    fields = validate_transaction({"type": "income", "amount": 1, "category": "X", "date": "2025-10-30T10:00:00+02:00"}, NOW)
    assert fields["date"] == datetime(2025, 10, 30, 8, 0)


def test_validate_transaction_error_codes():
    assert _code({"type": "transfer", "amount": 1, "category": "X"}) == "bad_type"
    assert _code({"type": "expense", "amount": "12", "category": "X"}) == "bad_amount"
    assert _code({"type": "expense", "amount": True, "category": "X"}) == "bad_amount"
    assert _code({"type": "expense", "amount": float("nan"), "category": "X"}) == "bad_amount"
    assert _code({"type": "expense", "amount": 1, "category": "  "}) == "bad_category"
    assert _code({"type": "expense", "amount": 1, "category": "X", "date": "yesterday"}) == "bad_date"


def test_parse_page():
    assert parse_page(None, None) == (20, 0)
    assert parse_page("500", "-3") == (100, 0)
    assert parse_page(0, 40) == (20, 40)
    assert parse_page("abc", "5") == (20, 5)


def test_to_public():
    doc = {
        "_id": ObjectId("507f1f77bcf86cd799439011"), "type": "expense", "amount_cents": 999, "amount": 9.99,
        "category": "Music", "note": None, "date": datetime(2025, 1, 2, 3, 4, 5, 678000),
    }
    assert to_public(doc) == {
        "id": "507f1f77bcf86cd799439011",
        "type": "expense",
        "amount": 9.99,
        "category": "Music",
        "note": None,
        "tags": [],
        "date": "2025-01-02T03:04:05Z",
    }


def test_duplicate_groups():
    docs = [
        {"_id": "1", "amount": 5.0, "note": "Coffee  Shop", "date": datetime(2025, 1, 2, 8)},
        {"_id": "2", "amount": 5.0, "note": "coffee shop", "date": datetime(2025, 1, 2, 17)},
        {"_id": "3", "amount": 5.0, "note": "coffee shop", "date": datetime(2025, 1, 3, 8)},
        {"_id": "4", "amount": 7.5, "note": "Lunch", "date": datetime(2025, 1, 2, 12)},
    ]
    [group] = duplicate_groups(docs)
    assert group["key"] == "2025-01-02|5.00|coffee shop"
    assert [item["id"] for item in group["items"]] == ["1", "2"]
