from fastapi import APIRouter, Depends, HTTPException

from app.core.security import get_current_user_id
from app.db import budgets as budgets_db
from app.db import transactions as transactions_db
from app.models.budget import BudgetPublic, BudgetStatus, BudgetsUpsert
from app.utils.budgets import budget_status, normalize_budgets
from app.utils.dates import month_bounds, utcnow

router = APIRouter()


def _public(doc):
    return BudgetPublic(id=str(doc["_id"]), category=doc["category"], monthly=doc.get("monthly_cents", 0) / 100)


@router.get("")
def list_budgets(user_id: str = Depends(get_current_user_id)):
    docs = budgets_db.list_budgets(user_id)
    if docs is None:
        raise HTTPException(status_code=500, detail="list_budgets_failed")
    return {"budgets": [_public(d) for d in docs]}


@router.put("")
def upsert_budgets(body: BudgetsUpsert, user_id: str = Depends(get_current_user_id)):
    normalized = normalize_budgets(item.model_dump() for item in body.budgets)
    if not budgets_db.upsert_budgets(user_id, normalized):
        raise HTTPException(status_code=500, detail="save_budgets_failed")
    return list_budgets(user_id)


@router.get("/status")
def get_budget_status(user_id: str = Depends(get_current_user_id)):
    now = utcnow()
    start, end = month_bounds(now.year, now.month)
    docs = budgets_db.list_budgets(user_id)
    if docs is None:
        raise HTTPException(status_code=500, detail="budget_status_failed")
    month_transactions = transactions_db.find_in_range(user_id, start, end)
    return {
        "month": f"{now.year:04d}-{now.month:02d}",
        "status": [BudgetStatus(**s) for s in budget_status(docs, month_transactions, now)],
    }
