from fastapi import APIRouter, Depends, HTTPException

from app.core.security import get_current_user_id
from app.db import recurring as recurring_db
from app.db.mongo import serialize, to_object_id
from app.utils.transactions import to_public

router = APIRouter()


def _recurring_id(recurring_id: str) -> str:
    if to_object_id(recurring_id) is None:
        raise HTTPException(status_code=400, detail="bad_id")
    return recurring_id


def _public(doc):
    data = serialize(doc)
    data.pop("user_id", None)
    return data


@router.post("/detect")
def detect_now(user_id: str = Depends(get_current_user_id)):
    return recurring_db.run_detection(user_id)


@router.get("")
def list_recurring(user_id: str = Depends(get_current_user_id)):
    docs = recurring_db.list_active(user_id)
    if docs is None:
        raise HTTPException(status_code=500, detail="list_recurring_failed")
    return {"recurring_expenses": [_public(d) for d in docs]}


@router.get("/{recurring_id}/transactions")
def recurring_transactions(recurring_id: str, user_id: str = Depends(get_current_user_id)):
    _recurring_id(recurring_id)
    if not recurring_db.get_recurring(user_id, recurring_id):
        raise HTTPException(status_code=404, detail="recurring_expense_not_found")
    docs = recurring_db.list_linked_transactions(user_id, recurring_id)
    return {"transactions": [to_public(d) for d in docs]}


@router.patch("/{recurring_id}/toggle")
def toggle_recurring(recurring_id: str, user_id: str = Depends(get_current_user_id)):
    _recurring_id(recurring_id)
    doc = recurring_db.toggle(user_id, recurring_id)
    if not doc:
        raise HTTPException(status_code=404, detail="recurring_expense_not_found")
    return {"recurring_expense": _public(doc)}
