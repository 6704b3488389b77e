from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.utils.dates import utcnow

WEEKS_PER_MONTH = 4.33

# multiplier that turns one bill payment into a monthly cost
MONTHLY_FACTORS = {
    "weekly": WEEKS_PER_MONTH,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "yearly": 1 / 12,
}


def _frequency_value(frequency: Any) -> str:
    return str(getattr(frequency, "value", frequency) or "monthly").lower()


def monthly_equivalent(bill: Dict[str, Any]) -> float:
    factor = MONTHLY_FACTORS.get(_frequency_value(bill.get("frequency")), 1.0)
    return float(bill.get("amount", 0) or 0) * factor


def active_bills(bills: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [b for b in bills if b.get("is_active", True)]


def monthly_bills_total(bills: Iterable[Dict[str, Any]]) -> float:
    return sum(monthly_equivalent(b) for b in active_bills(bills))


def bills_due_within(
    bills: Iterable[Dict[str, Any]],
    days: int = 7,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Active bills whose next_due falls in [now, now + days], soonest first."""
    now = now or utcnow()
    horizon = now + timedelta(days=days)
    due = [
        b for b in active_bills(bills)
        if isinstance(b.get("next_due"), datetime) and now <= b["next_due"] <= horizon
    ]
    return sorted(due, key=lambda b: b["next_due"])


def summarize_bills(bills: List[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    active = active_bills(bills)
    return {
        "active_count": len(active),
        "monthly_total": round(monthly_bills_total(active), 2),
        "due_soon": bills_due_within(active, 7, now),
    }
