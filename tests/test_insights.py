from datetime import datetime

import pytest

from app.utils.insights import InsightCategory, InsightEngine

NOW = datetime(2025, 11, 15, 12, 0)

# 2025-11-01 is a Saturday
sample_transactions = [
    {"_id": "t1", "type": "expense", "amount": 250.0, "category": "Food", "note": "Groceries", "date": datetime(2025, 11, 1, 12)},
    {"_id": "t2", "type": "expense", "amount": 1000.0, "category": "Rent", "note": "Rent", "date": datetime(2025, 11, 2, 12)},
    {"_id": "t3", "type": "expense", "amount": 150.0, "category": "Food", "note": "Groceries", "date": datetime(2025, 11, 3, 12)},
    {"_id": "t4", "type": "income", "amount": 3000.0, "category": "Salary", "note": "Payroll", "date": datetime(2025, 11, 5, 12)},
]

sample_bills = [
    {"name": "Phone", "amount": 12.0, "frequency": "monthly", "category": "Utilities", "is_active": True},
    {"name": "Domain", "amount": 120.0, "frequency": "yearly", "category": "Other", "is_active": True},
    {"name": "Old gym", "amount": 50.0, "frequency": "monthly", "category": "Health", "is_active": False},
]


def test_weekly_pattern_reports_busiest_weekday():
    engine = InsightEngine()
    [insight] = engine.weekly_pattern(sample_transactions)
    assert insight.category == InsightCategory.pattern
    assert insight.description == "You spend the most on Sundays, $1000.00 in total"
    assert insight.confidence == 0.75


def test_category_trend_uses_expense_share():
    engine = InsightEngine()
    [insight] = engine.category_trend(sample_transactions)
    assert insight.description == "71.4% of your spending goes to Rent"


def test_patterns_empty_without_expenses():
    engine = InsightEngine()
    income_only = [tx for tx in sample_transactions if tx["type"] == "income"]
    assert engine.detect_patterns(income_only) == []


def test_anomalies_need_minimum_samples():
    engine = InsightEngine()
    assert engine.detect_anomalies(sample_transactions) == []


def test_anomalies_flag_outliers():
    engine = InsightEngine()
    transactions = [
        {"_id": f"s{i}", "type": "expense", "amount": 10.0, "category": "Coffee", "date": datetime(2025, 11, i + 1)}
        for i in range(9)
    ]
    transactions.append({"_id": "big", "type": "expense", "amount": 500.0, "category": "Electronics", "date": datetime(2025, 11, 12)})

    insights = engine.detect_anomalies(transactions)
    unusual = [i for i in insights if i.title == "Unusual Transaction"]
    assert len(unusual) == 1
    assert "$500.00 in Electronics" in unusual[0].description

    [flag] = [i for i in insights if i.title == "Flag Anomalies"]
    assert flag.actionable is True
    assert flag.action == {"type": "flag_anomalies", "transaction_ids": ["big"]}


def test_project_month_spend_adds_active_bills():
    engine = InsightEngine()
    # 1400 spent by day 15 of a 30-day month, plus 12 + 120/12 in bills
    projected = engine.project_month_spend(sample_transactions, sample_bills, NOW)
    assert projected == pytest.approx(2822.0)


def test_forecast_with_only_bills():
    engine = InsightEngine()
    [insight] = engine.forecast([], sample_bills, NOW)
    assert insight.category == InsightCategory.prediction
    assert "$22.00" in insight.description


def test_forecast_empty_without_data():
    engine = InsightEngine()
    assert engine.forecast([], [], NOW) == []


def test_subscription_review_needs_more_than_three():
    engine = InsightEngine()
    subscriptions = [
        {"name": f"Sub {i}", "amount": 10.0, "frequency": "monthly", "category": "Subscriptions", "is_active": True}
        for i in range(4)
    ]
    titles = [i.title for i in engine.suggest_optimizations(sample_transactions, subscriptions)]
    assert "Subscription Review" in titles
    titles = [i.title for i in engine.suggest_optimizations(sample_transactions, subscriptions[:3])]
    assert "Subscription Review" not in titles


def test_repeating_notes_suggest_category():
    engine = InsightEngine()
    transactions = [
        {"type": "expense", "amount": 9.99, "category": "Other", "note": "Streamly ", "date": datetime(2025, m, 3)}
        for m in (8, 9, 10)
    ]
    [suggestion] = [i for i in engine.suggest_optimizations(transactions, []) if i.title == "Possible Subscriptions"]
    assert suggestion.action == {"type": "set_category_for_notes", "notes": ["streamly"], "category": "Subscriptions"}


def test_generate_sorted_by_confidence():
    engine = InsightEngine()
    insights = engine.generate(sample_transactions, sample_bills, NOW)
    confidences = [i.confidence for i in insights]
    assert confidences == sorted(confidences, reverse=True)
    assert insights[0].title == "Top Spending Category"


def test_generate_empty_transactions():
    assert InsightEngine().generate([], sample_bills, NOW) == []


def test_to_dict_drops_empty_action():
    engine = InsightEngine()
    [insight] = engine.category_trend(sample_transactions)
    data = insight.to_dict()
    assert data["category"] == "pattern"
    assert "action" not in data
    assert len(data["id"]) == 32
