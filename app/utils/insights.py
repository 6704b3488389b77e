from __future__ import annotations

import calendar
import statistics
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from app.utils.bills import active_bills, monthly_bills_total
from app.utils.dates import days_in_month, utcnow


class InsightCategory(str, Enum):
    pattern = "pattern"
    anomaly = "anomaly"
    prediction = "prediction"
    optimization = "optimization"


@dataclass
class SpendingInsight:
    """A single finding shown on the insights screen."""

    title: str
    description: str
    category: InsightCategory
    confidence: float
    actionable: bool = False
    action: Optional[Dict[str, Any]] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        # Remove None values for cleaner JSON responses
        return {k: v for k, v in data.items() if v is not None}


def tx_amount(tx: Dict[str, Any]) -> float:
    if tx.get("amount_cents") is not None:
        return tx["amount_cents"] / 100
    return float(tx.get("amount", 0) or 0)


def expenses_only(transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [tx for tx in transactions if tx.get("type") == "expense"]


def category_totals(transactions: List[Dict[str, Any]]) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for tx in expenses_only(transactions):
        totals[tx.get("category") or "Uncategorized"] += tx_amount(tx)
    return dict(totals)


def normalize_note(note: Optional[str]) -> str:
    return (note or "").lower().strip()


class InsightEngine:
    """
    Heuristic spending insights. Each detector is a stateless single pass
    over the user's transactions; too little data yields no insight.
    """

    def __init__(
        self,
        anomaly_sigma: float = 2.0,
        min_anomaly_samples: int = 8,
        max_anomalies: int = 5,
        subscription_bill_threshold: int = 3,
        repeating_note_min_count: int = 3,
    ) -> None:
        self._anomaly_sigma = anomaly_sigma
        self._min_anomaly_samples = min_anomaly_samples
        self._max_anomalies = max_anomalies
        self._subscription_bill_threshold = subscription_bill_threshold
        self._repeating_note_min_count = repeating_note_min_count

    # Pattern detection

    def weekly_pattern(self, transactions: List[Dict[str, Any]]) -> List[SpendingInsight]:
        weekday_totals: Dict[int, float] = defaultdict(float)
        for tx in expenses_only(transactions):
            date = tx.get("date")
            if isinstance(date, datetime):
                weekday_totals[date.weekday()] += tx_amount(tx)

        if not weekday_totals:
            return []

        day, total = max(weekday_totals.items(), key=lambda item: item[1])
        return [SpendingInsight(
            title="Weekly Pattern",
            description=f"You spend the most on {calendar.day_name[day]}s, ${total:.2f} in total",
            category=InsightCategory.pattern,
            confidence=0.75,
        )]

    def category_trend(self, transactions: List[Dict[str, Any]]) -> List[SpendingInsight]:
        totals = category_totals(transactions)
        overall = sum(totals.values())
        if not totals or overall <= 0:
            return []

        top_category, top_total = max(totals.items(), key=lambda item: item[1])
        percentage = top_total / overall * 100
        return [SpendingInsight(
            title="Category Trend",
            description=f"{percentage:.1f}% of your spending goes to {top_category}",
            category=InsightCategory.pattern,
            confidence=0.8,
        )]

    def detect_patterns(self, transactions: List[Dict[str, Any]]) -> List[SpendingInsight]:
        return self.weekly_pattern(transactions) + self.category_trend(transactions)

    # Anomaly detection

    def outliers(self, transactions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Expenses above mean + sigma * population stdev."""
        expenses = expenses_only(transactions)
        if len(expenses) < self._min_anomaly_samples:
            return []

        amounts = [tx_amount(tx) for tx in expenses]
        mean = statistics.fmean(amounts)
        threshold = mean + self._anomaly_sigma * statistics.pstdev(amounts)
        return [tx for tx in expenses if tx_amount(tx) > threshold]

    def detect_anomalies(self, transactions: List[Dict[str, Any]]) -> List[SpendingInsight]:
        outliers = self.outliers(transactions)[: self._max_anomalies]
        insights = [
            SpendingInsight(
                title="Unusual Transaction",
                description=(
                    f"${tx_amount(tx):.2f} in {tx.get('category')} is unusually high "
                    f"compared to your typical spend"
                ),
                category=InsightCategory.anomaly,
                confidence=0.7,
            )
            for tx in outliers
        ]

        ids = [str(tx["_id"]) for tx in outliers if tx.get("_id") is not None]
        if ids:
            insights.append(SpendingInsight(
                title="Flag Anomalies",
                description=f"Flag {len(ids)} unusual transactions for follow-up.",
                category=InsightCategory.anomaly,
                confidence=0.65,
                actionable=True,
                action={"type": "flag_anomalies", "transaction_ids": ids},
            ))
        return insights

    # Forecast

    def project_month_spend(
        self,
        transactions: List[Dict[str, Any]],
        bills: List[Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> float:
        """Linear projection of this month's expenses plus monthly bill costs."""
        now = now or utcnow()
        spent = sum(
            tx_amount(tx)
            for tx in expenses_only(transactions)
            if isinstance(tx.get("date"), datetime)
            and tx["date"].year == now.year
            and tx["date"].month == now.month
        )
        daily_average = spent / now.day if now.day > 0 else 0.0
        projected = daily_average * days_in_month(now.year, now.month)
        return projected + monthly_bills_total(bills)

    def forecast(
        self,
        transactions: List[Dict[str, Any]],
        bills: List[Dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> List[SpendingInsight]:
        if not transactions and not active_bills(bills):
            return []

        projected = self.project_month_spend(transactions, bills, now)
        return [SpendingInsight(
            title="Monthly Forecast",
            description=f"Based on current spending, you're projected to spend ${projected:.2f} this month",
            category=InsightCategory.prediction,
            confidence=0.85,
            actionable=True,
        )]

    # Optimization

    def repeating_notes(self, transactions: List[Dict[str, Any]]) -> List[str]:
        counts: Dict[str, int] = defaultdict(int)
        for tx in expenses_only(transactions):
            key = normalize_note(tx.get("note"))
            if key:
                counts[key] += 1
        return [note for note, count in counts.items() if count >= self._repeating_note_min_count]

    def suggest_optimizations(
        self,
        transactions: List[Dict[str, Any]],
        bills: List[Dict[str, Any]],
    ) -> List[SpendingInsight]:
        suggestions: List[SpendingInsight] = []

        totals = category_totals(transactions)
        if totals:
            top_category, top_total = max(totals.items(), key=lambda item: item[1])
            suggestions.append(SpendingInsight(
                title="Top Spending Category",
                description=(
                    f"Your highest expense category is '{top_category}' at ${top_total:.2f}. "
                    f"Consider setting a monthly budget for this category."
                ),
                category=InsightCategory.optimization,
                confidence=0.9,
                actionable=True,
            ))

        subscriptions = [b for b in active_bills(bills) if b.get("category") == "Subscriptions"]
        if len(subscriptions) > self._subscription_bill_threshold:
            monthly = monthly_bills_total(subscriptions)
            suggestions.append(SpendingInsight(
                title="Subscription Review",
                description=(
                    f"You have {len(subscriptions)} active subscriptions costing ${monthly:.2f}/month. "
                    f"Review which ones you actively use."
                ),
                category=InsightCategory.optimization,
                confidence=0.8,
                actionable=True,
            ))

        notes = self.repeating_notes(transactions)
        if notes:
            suggestions.append(SpendingInsight(
                title="Possible Subscriptions",
                description=(
                    f"Detected {len(notes)} possible subscriptions from repeating notes. "
                    f"Consider cancelling unused ones."
                ),
                category=InsightCategory.optimization,
                confidence=0.6,
                actionable=True,
                action={"type": "set_category_for_notes", "notes": notes[:3], "category": "Subscriptions"},
            ))

        return suggestions

    def generate(
        self,
        transactions: List[Dict[str, Any]],
        bills: Optional[List[Dict[str, Any]]] = None,
        now: Optional[datetime] = None,
    ) -> List[SpendingInsight]:
        """Run every detector and return the findings, most confident first."""
        bills = bills or []
        if not transactions:
            return []

        insights: List[SpendingInsight] = []
        insights.extend(self.detect_patterns(transactions))
        insights.extend(self.detect_anomalies(transactions))
        insights.extend(self.forecast(transactions, bills, now))
        insights.extend(self.suggest_optimizations(transactions, bills))
        return sorted(insights, key=lambda insight: insight.confidence, reverse=True)
