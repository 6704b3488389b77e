"""
Recurring expense detection.

Expenses with similar notes are grouped greedily; a group of three or more
is treated as recurring when its payments arrive at a regular interval or
its description looks like a typical bill (utilities, streaming, rent...).
"""
import re
import statistics
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from app.utils.dates import utcnow
from app.utils.insights import tx_amount

COMMON_RECURRING_PATTERNS = [
    # bills & utilities
    re.compile(r"electric|electricity|power|utility", re.I),
    re.compile(r"water|sewer|waste", re.I),
    re.compile(r"gas|natural gas", re.I),
    re.compile(r"internet|wifi|broadband", re.I),
    re.compile(r"phone|mobile|cellular|verizon|att|tmobile", re.I),
    re.compile(r"cable|dish|satellite", re.I),
    # subscriptions
    re.compile(r"netflix|hulu|amazon prime|disney|spotify|apple music", re.I),
    re.compile(r"subscription|monthly|yearly", re.I),
    # housing
    re.compile(r"rent|mortgage|hoa|homeowners", re.I),
    re.compile(r"insurance|auto insurance|car insurance|health insurance", re.I),
    re.compile(r"car payment|auto loan", re.I),
    re.compile(r"gym|fitness|membership", re.I),
    re.compile(r"loan|payment", re.I),
]

# (low, high) day gaps, inclusive
GAP_BANDS = {
    "weekly": (6, 8),
    "biweekly": (13, 15),
    "monthly": (25, 35),
}

SIMILARITY_THRESHOLD = 0.6
MIN_OCCURRENCES = 3
LOOKBACK_DAYS = 183
AMOUNT_LOW_FACTOR = 0.8
AMOUNT_HIGH_FACTOR = 1.2

_LONG_NUMBER = re.compile(r"\d{4,}")
_SHORT_DATE = re.compile(r"\b\d{1,2}/\d{1,2}\b")
_SEPARATORS = re.compile(r"[#*\-_]+")
_WHITESPACE = re.compile(r"\s+")


def normalize_description(description: Optional[str]) -> str:
    text = (description or "").lower()
    text = _LONG_NUMBER.sub("", text)
    text = _SHORT_DATE.sub("", text)
    text = _SEPARATORS.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def _significant_words(description: str) -> set:
    return {word for word in description.split(" ") if len(word) > 2}


def are_similar(a: str, b: str, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    """Jaccard similarity of the words longer than two characters."""
    words_a = _significant_words(a)
    words_b = _significant_words(b)
    union = words_a | words_b
    if not union:
        return False
    return len(words_a & words_b) / len(union) >= threshold


def matches_common_pattern(description: str) -> bool:
    return any(pattern.search(description) for pattern in COMMON_RECURRING_PATTERNS)


def day_gaps(transactions: List[Dict[str, Any]]) -> List[int]:
    dates = sorted(tx["date"] for tx in transactions)
    return [int((b - a).total_seconds() // 86400) for a, b in zip(dates, dates[1:])]


def has_regular_interval(transactions: List[Dict[str, Any]]) -> bool:
    if len(transactions) < MIN_OCCURRENCES:
        return False
    gaps = day_gaps(transactions)
    return any(
        all(low <= gap <= high for gap in gaps)
        for low, high in GAP_BANDS.values()
    )


def determine_frequency(transactions: List[Dict[str, Any]]) -> str:
    gaps = day_gaps(transactions)
    if not gaps:
        return "monthly"

    mean_gap = statistics.fmean(gaps)
    if mean_gap <= 2:
        return "daily"
    if 6 <= mean_gap <= 8:
        return "weekly"
    if 13 <= mean_gap <= 15:
        return "biweekly"
    if 25 <= mean_gap <= 35:
        return "monthly"
    if 350 <= mean_gap <= 375:
        return "yearly"
    return "monthly"


@dataclass
class RecurringCandidate:
    """A detected group of similar expenses, ready to be upserted."""

    name: str
    transactions: List[Dict[str, Any]] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        ordered = sorted(self.transactions, key=lambda tx: tx["date"])
        first = ordered[0]
        amounts = [tx_amount(tx) for tx in ordered]
        frequency = determine_frequency(ordered)

        descriptions: List[str] = []
        for tx in ordered:
            note = tx.get("note") or ""
            if note and note not in descriptions:
                descriptions.append(note)

        patterns: Dict[str, Any] = {
            "descriptions": descriptions,
            "amount_range": {"min": min(amounts), "max": max(amounts)},
        }
        if frequency == "monthly":
            patterns["day_of_month"] = first["date"].day
        elif frequency == "weekly":
            # 0 = Sunday
            patterns["day_of_week"] = first["date"].isoweekday() % 7

        return {
            "name": self.name,
            "category": first.get("category"),
            "average_amount": round(statistics.fmean(amounts), 2),
            "frequency": frequency,
            "first_detected": first["date"],
            "last_seen": ordered[-1]["date"],
            "occurrence_count": len(ordered),
            "is_active": True,
            "patterns": patterns,
        }


def group_by_description(transactions: List[Dict[str, Any]]) -> List[RecurringCandidate]:
    """Greedy grouping: each expense joins the first group whose key it resembles."""
    groups: List[RecurringCandidate] = []
    for tx in sorted(transactions, key=lambda t: t["date"]):
        key = normalize_description(tx.get("note"))
        for group in groups:
            if are_similar(key, group.name):
                group.transactions.append(tx)
                break
        else:
            groups.append(RecurringCandidate(name=key, transactions=[tx]))
    return groups


def detect_recurring(
    transactions: List[Dict[str, Any]],
    now: Optional[datetime] = None,
    lookback_days: int = LOOKBACK_DAYS,
) -> List[RecurringCandidate]:
    """Candidates among the expenses of the lookback window."""
    since = (now or utcnow()) - timedelta(days=lookback_days)
    expenses = [
        tx for tx in transactions
        if tx.get("type", "expense") == "expense"
        and isinstance(tx.get("date"), datetime)
        and tx["date"] >= since
    ]

    recurring = []
    for group in group_by_description(expenses):
        if len(group.transactions) < MIN_OCCURRENCES:
            continue
        if has_regular_interval(group.transactions) or matches_common_pattern(group.name):
            recurring.append(group)
    return recurring


def matches_recurring(tx: Dict[str, Any], recurring: Dict[str, Any]) -> bool:
    if tx.get("category") != recurring.get("category"):
        return False

    amount_range = (recurring.get("patterns") or {}).get("amount_range") or {}
    low = amount_range.get("min", 0) * AMOUNT_LOW_FACTOR
    high = amount_range.get("max", 0) * AMOUNT_HIGH_FACTOR
    if not low <= tx_amount(tx) <= high:
        return False

    description = normalize_description(tx.get("note"))
    return any(
        are_similar(description, normalize_description(pattern))
        for pattern in (recurring.get("patterns") or {}).get("descriptions", [])
    )
