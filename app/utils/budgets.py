import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from app.utils.dates import utcnow
from app.utils.insights import category_totals, tx_amount

OVERALL = "Overall"
WARN_RATIO = 0.8
DANGER_RATIO = 1.0


def normalize_category(raw: Optional[str]) -> str:
    """'  eating   out ' -> 'Eating Out'; blank or 'overall' -> 'Overall'."""
    text = (raw or "").strip()
    if not text or text.lower() == OVERALL.lower():
        return OVERALL
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split())


def normalize_budgets(items: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """category -> monthly cents. Invalid amounts are dropped; last write wins."""
    result: Dict[str, int] = {}
    for item in items:
        try:
            monthly = float(item.get("monthly"))
        except (TypeError, ValueError):
            continue
        if not math.isfinite(monthly) or monthly < 0:
            continue
        result[normalize_category(item.get("category"))] = int(round(monthly * 100))
    return result


def budget_level(spent: float, monthly: float) -> str:
    if monthly <= 0:
        return "danger" if spent > 0 else "ok"
    ratio = spent / monthly
    if ratio >= DANGER_RATIO:
        return "danger"
    if ratio >= WARN_RATIO:
        return "warn"
    return "ok"


def budget_status(
    budgets: List[Dict[str, Any]],
    transactions: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Spending against each budget for the current calendar month."""
    now = now or utcnow()
    this_month = [
        tx for tx in transactions
        if isinstance(tx.get("date"), datetime)
        and (tx["date"].year, tx["date"].month) == (now.year, now.month)
    ]
    totals = {normalize_category(c): 0.0 for c in category_totals(this_month)}
    for category, total in category_totals(this_month).items():
        totals[normalize_category(category)] += total
    overall = sum(tx_amount(tx) for tx in this_month if tx.get("type") == "expense")

    status = []
    for budget in sorted(budgets, key=lambda b: b["category"]):
        monthly = budget.get("monthly_cents", 0) / 100
        spent = overall if budget["category"] == OVERALL else totals.get(budget["category"], 0.0)
        status.append({
            "category": budget["category"],
            "monthly": monthly,
            "spent": round(spent, 2),
            "remaining": round(monthly - spent, 2),
            "level": budget_level(spent, monthly),
        })
    return status
