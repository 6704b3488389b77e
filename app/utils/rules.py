import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

RULE_FIELDS = ("note", "category")
RULE_TYPES = ("contains", "regex")
MAX_RULE_TAGS = 10
MAX_TRANSACTION_TAGS = 20


def rule_matches(rule: Dict[str, Any], tx: Dict[str, Any]) -> bool:
    when = rule.get("when") or {}
    field_value = str(tx.get(when.get("field")) or "")
    value = str(when.get("value") or "")

    if when.get("type") == "contains":
        return value.lower() in field_value.lower()
    if when.get("type") == "regex":
        try:
            return re.search(value, field_value, re.IGNORECASE) is not None
        except re.error as e:
            logger.info(f"Skipping rule {rule.get('_id')} with invalid regex: {e}")
            return False
    return False


def merge_tags(current: Iterable[str], extra: Iterable[str], limit: int = MAX_TRANSACTION_TAGS) -> List[str]:
    merged: List[str] = []
    for tag in list(current or []) + list(extra or []):
        if tag not in merged:
            merged.append(tag)
    return merged[:limit]


def compute_update(tx: Dict[str, Any], rules: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Fields to $set on the transaction, from the first enabled rule that
    matches and actually changes something. None when no rule applies.
    """
    for rule in rules:
        if rule.get("enabled") is False or not rule_matches(rule, tx):
            continue

        target = rule.get("set") or {}
        update: Dict[str, Any] = {}
        if target.get("category") and target["category"] != tx.get("category"):
            update["category"] = target["category"]
        if target.get("tags"):
            tags = merge_tags(tx.get("tags") or [], target["tags"])
            if tags != list(tx.get("tags") or []):
                update["tags"] = tags
        if update:
            return update
    return None


def sort_rules(rules: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Evaluation order: explicit `order` first (ascending), then creation time."""
    def key(rule):
        order = rule.get("order")
        return (order is None, order if order is not None else 0, rule.get("created_at") or datetime.min)
    return sorted(rules, key=key)
