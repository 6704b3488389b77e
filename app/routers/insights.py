import logging

from fastapi import APIRouter, Depends, HTTPException

from app.core.security import get_current_user_id
from app.db import bills as bills_db
from app.db import transactions as transactions_db
from app.models.insight import InsightAction
from app.utils.analytics import compute_alerts, compute_health_score, detect_subscriptions
from app.utils.insights import InsightEngine

logger = logging.getLogger(__name__)

router = APIRouter()
insight_engine = InsightEngine()


@router.get("/insights")
def get_insights(user_id: str = Depends(get_current_user_id)):
    transactions = transactions_db.find_transactions(user_id)
    bills = bills_db.list_bills(user_id) or []
    insights = insight_engine.generate(transactions, bills)
    return {"insights": [insight.to_dict() for insight in insights]}


# POST alias of GET /insights
@router.post("/insights/generate")
def generate_insights(user_id: str = Depends(get_current_user_id)):
    return get_insights(user_id)


@router.post("/insights/apply")
def apply_insight_action(body: InsightAction, user_id: str = Depends(get_current_user_id)):
    action = body.action
    if not isinstance(action, dict) or not isinstance(action.get("type"), str):
        raise HTTPException(status_code=400, detail="missing_or_invalid_action")

    if action["type"] == "set_category_for_notes":
        notes = action.get("notes")
        if not isinstance(notes, list) or not [n for n in notes if isinstance(n, str) and n.strip()]:
            raise HTTPException(status_code=400, detail="notes_required")
        category = action.get("category") if isinstance(action.get("category"), str) else ""
        updated = transactions_db.set_category_for_notes(user_id, notes, category.strip() or "Subscriptions")
        logger.info(f"Recategorised {updated} transactions for user {user_id}")
        return {"updated": updated}

    if action["type"] == "flag_anomalies":
        ids = action.get("transaction_ids")
        if not isinstance(ids, list) or not ids:
            raise HTTPException(status_code=400, detail="transaction_ids_required")
        flagged = transactions_db.flag_anomalies(user_id, ids)
        return {"flagged": flagged}

    raise HTTPException(status_code=400, detail="unsupported_action_type")


@router.get("/health-score")
def health_score(user_id: str = Depends(get_current_user_id)):
    return compute_health_score(transactions_db.find_transactions(user_id))


@router.get("/alerts")
def alerts(user_id: str = Depends(get_current_user_id)):
    return {"alerts": compute_alerts(transactions_db.find_transactions(user_id))}


@router.get("/subscriptions")
def subscriptions(user_id: str = Depends(get_current_user_id)):
    """Repeating notes that look like subscriptions, most expensive per month first."""
    return {"subs": detect_subscriptions(transactions_db.find_transactions(user_id))}
