from typing import Any, List, Optional

from pydantic import BaseModel, Field


class TransactionIn(BaseModel):
    """
    Loose create/update body. Field checks happen in
    app.utils.transactions.validate_transaction so that each failure maps
    to its own error code (bad_type, bad_amount...).
    """

    type: Any = None
    amount: Any = None
    category: Any = None
    note: Any = None
    date: Any = None
    tags: Any = None
    dedupe_hash: Any = None


class TransactionPublic(BaseModel):
    id: str
    type: str
    amount: float
    category: str
    note: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    date: Optional[str] = None
    receipt_url: Optional[str] = None
    recurring_expense_id: Optional[str] = None
    is_recurring: Optional[bool] = None
    anomaly_flagged: Optional[bool] = None


class DuplicateResolve(BaseModel):
    keep_id: str
    delete_ids: List[str] = Field(default_factory=list)
