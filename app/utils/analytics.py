"""
Aggregates, financial health score and proactive alerts.
All functions are pure: callers load the transactions and pass a clock.
"""
from __future__ import annotations

import statistics
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from app.utils.dates import previous_month, utcnow
from app.utils.insights import category_totals, expenses_only, normalize_note, tx_amount

SUBSCRIPTION_KEYWORDS = (
    "subscription", "member", "membership", "plan", "service", "auto-pay",
    "netflix", "hulu", "disney", "spotify", "apple music", "youtube", "prime video",
    "icloud", "google one", "dropbox", "onedrive", "adobe", "microsoft", "notion", "github",
    "at&t", "verizon", "t-mobile", "xfinity", "comcast", "spectrum", "internet", "fiber",
    "mobile", "phone", "insurance", "gym", "fitness", "peloton",
)
EXCLUDE_KEYWORDS = (
    "grocery", "groceries", "market", "supermarket", "walmart", "target", "costco", "kroger",
    "safeway", "aldi", "mcdonald", "starbucks", "chipotle", "restaurant", "dining", "uber",
    "doordash", "instacart", "chevron", "shell", "exxon", "gas", "fuel", "pharmacy", "coffee",
)
ALLOWED_CATEGORIES = {
    "Subscriptions", "Utilities", "Internet", "Telecom", "Mobile", "Insurance",
    "Streaming", "Software", "Music", "TV", "Cloud",
}

FREQUENCY_MONTHLY_FACTOR = {"weekly": 4.33, "biweekly": 2.17, "monthly": 1.0, "yearly": 1 / 12}


def _day_gaps(dates: List[datetime]) -> List[float]:
    ordered = sorted(dates)
    return [(b - a).total_seconds() / 86400 for a, b in zip(ordered, ordered[1:])]


def gap_to_frequency(median_gap: float) -> str:
    if 5 <= median_gap <= 9:
        return "weekly"
    if 12 <= median_gap <= 16:
        return "biweekly"
    if 300 <= median_gap <= 430:
        return "yearly"
    return "monthly"


def looks_like_subscription(note: str, categories: Dict[str, int]) -> bool:
    lowered = note.lower()
    if any(word in lowered for word in EXCLUDE_KEYWORDS):
        return False
    if any(word in lowered for word in SUBSCRIPTION_KEYWORDS):
        return True
    if not categories:
        return False
    top_category = max(categories.items(), key=lambda item: item[1])[0]
    return top_category in ALLOWED_CATEGORIES


def detect_subscriptions(transactions: List[Dict[str, Any]], limit: int = 10) -> List[Dict[str, Any]]:
    """Repeating notes (3+ times) that look like subscriptions, by monthly cost."""
    by_note: Dict[str, Dict[str, Any]] = {}
    for tx in expenses_only(transactions):
        key = normalize_note(tx.get("note"))
        if not key:
            continue
        entry = by_note.setdefault(key, {"sum": 0.0, "dates": [], "categories": defaultdict(int)})
        entry["sum"] += tx_amount(tx)
        if isinstance(tx.get("date"), datetime):
            entry["dates"].append(tx["date"])
        entry["categories"][tx.get("category")] += 1

    subscriptions = []
    for note, entry in by_note.items():
        count = sum(entry["categories"].values())
        if count < 3 or not looks_like_subscription(note, entry["categories"]):
            continue
        gaps = _day_gaps(entry["dates"])
        frequency = gap_to_frequency(statistics.median(gaps)) if gaps else "monthly"
        average = entry["sum"] / count
        subscriptions.append({
            "note": note,
            "count": count,
            "avg": round(average, 2),
            "monthly_estimate": round(average * FREQUENCY_MONTHLY_FACTOR[frequency], 2),
            "frequency": frequency,
        })

    subscriptions.sort(key=lambda s: s["monthly_estimate"], reverse=True)
    return subscriptions[:limit]


def compute_aggregates(transactions: List[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Totals, top categories, outliers and subscriptions over the last 12 months."""
    now = now or utcnow()
    since = now - timedelta(days=365)
    window = [tx for tx in transactions if isinstance(tx.get("date"), datetime) and tx["date"] >= since]

    expenses = expenses_only(window)
    expense_total = sum(tx_amount(tx) for tx in expenses)
    income_total = sum(tx_amount(tx) for tx in window if tx.get("type") == "income")

    categories = sorted(
        ({"category": c, "total": round(t, 2)} for c, t in category_totals(window).items()),
        key=lambda item: item["total"],
        reverse=True,
    )[:15]

    outliers: List[Dict[str, Any]] = []
    if expenses:
        amounts = [tx_amount(tx) for tx in expenses]
        threshold = statistics.fmean(amounts) + 2 * statistics.pstdev(amounts)
        outliers = [
            {
                "date": tx["date"].date().isoformat(),
                "category": tx.get("category"),
                "amount": tx_amount(tx),
                "note": tx.get("note"),
            }
            for tx in sorted(expenses, key=tx_amount, reverse=True)
            if tx_amount(tx) > threshold
        ][:10]

    return {
        "timeframe": {"from": since.date().isoformat(), "to": now.date().isoformat(), "months": 12},
        "totals": {
            "expense": round(expense_total, 2),
            "income": round(income_total, 2),
            "net": round(income_total - expense_total, 2),
        },
        "categories": categories,
        "outliers": outliers,
        "subscriptions": detect_subscriptions(window),
    }


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def weekly_volatility(transactions: List[Dict[str, Any]], now: Optional[datetime] = None) -> float:
    """Coefficient of variation of weekly expense totals over the last 90 days, clamped to 0..2."""
    now = now or utcnow()
    since = now - timedelta(days=90)
    weeks: Dict[tuple, float] = defaultdict(float)
    for tx in expenses_only(transactions):
        date = tx.get("date")
        if isinstance(date, datetime) and date >= since:
            iso_year, iso_week, _ = date.isocalendar()
            weeks[(iso_year, iso_week)] += tx_amount(tx)

    weekly = list(weeks.values())
    if not weekly:
        return 0.0
    mean = statistics.fmean(weekly)
    if mean <= 0:
        return 0.0
    return _clamp(statistics.pstdev(weekly) / mean, 0, 2)


def compute_health_score(transactions: List[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    aggregates = compute_aggregates(transactions, now)
    expense = aggregates["totals"]["expense"]
    income = aggregates["totals"]["income"]
    savings_rate = _clamp((income - expense) / income, -1, 1) if income > 0 else -1.0

    volatility = weekly_volatility(transactions, now)

    category_sum = sum(c["total"] for c in aggregates["categories"]) or 1
    top_share = max((c["total"] for c in aggregates["categories"]), default=0) / category_sum

    subscriptions_monthly = sum(s["monthly_estimate"] for s in aggregates["subscriptions"])
    monthly_spend = expense / 12
    subscriptions_share = _clamp(subscriptions_monthly / monthly_spend, 0, 1.5) if monthly_spend > 0 else 0.0

    net_score = (income - expense) / max(income, 1) * 20 + (10 if income > expense else 0)
    components = [
        {"key": "savings_rate", "label": "Savings Rate", "max": 40, "score": _clamp(savings_rate * 200, 0, 40)},
        {"key": "net_positive", "label": "Net Positive Cashflow", "max": 20, "score": _clamp(net_score, 0, 20)},
        {"key": "stability", "label": "Spending Stability", "max": 20, "score": _clamp((1 - volatility) * 20, 0, 20)},
        {"key": "diversification", "label": "Category Diversification", "max": 10, "score": _clamp((1 - top_share) * 10, 0, 10)},
        {"key": "subs_burden", "label": "Subscription Burden", "max": 10, "score": _clamp((1 - subscriptions_share) * 10, 0, 10)},
    ]

    recommendations = []
    if savings_rate < 0.1:
        recommendations.append("Increase savings rate towards 15-20% by trimming top categories.")
    if volatility > 0.6:
        recommendations.append("Smooth spending by setting weekly caps on variable categories.")
    if top_share > 0.35:
        recommendations.append("Reduce reliance on your top category; set a monthly budget.")
    if subscriptions_share > 0.2:
        recommendations.append("Review subscriptions; aim for < 15% of monthly spend.")

    return {
        "score": round(sum(c["score"] for c in components)),
        "components": [{**c, "score": round(c["score"])} for c in components],
        "recommendations": recommendations,
        "totals": aggregates["totals"],
    }


def _alert(title: str, body: str, severity: str) -> Dict[str, Any]:
    return {"id": uuid.uuid4().hex, "title": title, "body": body, "severity": severity}


def compute_alerts(
    transactions: List[Dict[str, Any]],
    now: Optional[datetime] = None,
    limit: int = 8,
) -> List[Dict[str, Any]]:
    now = now or utcnow()
    expenses = [
        tx for tx in expenses_only(transactions)
        if isinstance(tx.get("date"), datetime) and tx["date"] <= now
    ]
    alerts: List[Dict[str, Any]] = []

    def age_days(tx):
        return (now - tx["date"]).total_seconds() / 86400

    # 1. This week vs the previous four weeks
    last_week = [tx for tx in expenses if age_days(tx) <= 7]
    previous_four = [tx for tx in expenses if 7 < age_days(tx) <= 35]
    week_total = sum(tx_amount(tx) for tx in last_week)
    previous_average = sum(tx_amount(tx) for tx in previous_four) / 4 if previous_four else 0
    if previous_average > 0 and week_total > previous_average * 1.2 and week_total > 100:
        pct = round((week_total / previous_average - 1) * 100)
        alerts.append(_alert(
            "This week trending high",
            f"Spending is {pct}% above your recent weekly average. "
            f"Consider pausing a few discretionary purchases.",
            "critical" if pct > 40 else "warning",
        ))

    # 2. Category up versus last month
    last_year, last_month = previous_month(now.year, now.month)
    this_month = category_totals([tx for tx in expenses if (tx["date"].year, tx["date"].month) == (now.year, now.month)])
    prior_month = category_totals([tx for tx in expenses if (tx["date"].year, tx["date"].month) == (last_year, last_month)])
    for category, amount in this_month.items():
        base = prior_month.get(category, 0)
        if amount > 100 and base > 0 and amount > base * 1.3:
            pct = round((amount / base - 1) * 100)
            alerts.append(_alert(
                f"{category} up {pct}%",
                f"You're spending more on {category} this month (${amount:.0f} vs ${base:.0f} last month).",
                "warning" if pct > 60 else "info",
            ))

    # 3. Large purchases in the last week
    if expenses:
        amounts = [tx_amount(tx) for tx in expenses]
        floor = max(300.0, statistics.fmean(amounts) + 2.5 * statistics.pstdev(amounts))
        for tx in last_week:
            if tx_amount(tx) >= floor:
                note = f" - {tx['note']}" if tx.get("note") else ""
                alerts.append(_alert(
                    "Large purchase",
                    f"{tx['date'].date().isoformat()} - {tx.get('category')}{note}: ${tx_amount(tx):.2f}",
                    "info",
                ))

    # 4. Subscription burden
    aggregates = compute_aggregates(transactions, now)
    subscriptions_monthly = sum(s["monthly_estimate"] for s in aggregates["subscriptions"])
    monthly_spend = aggregates["totals"]["expense"] / 12
    if subscriptions_monthly > 0 and monthly_spend > 0 and subscriptions_monthly / monthly_spend > 0.25:
        alerts.append(_alert(
            "Subscriptions heavy",
            f"Estimated subscriptions ~${subscriptions_monthly:.0f}/mo may exceed 25% of monthly spending. "
            f"Review to save.",
            "info",
        ))

    return alerts[:limit]
