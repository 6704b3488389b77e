from datetime import datetime, timedelta

import pytest

from app.models.bill import BillFrequency
from app.utils.bills import bills_due_within, monthly_bills_total, monthly_equivalent, summarize_bills

NOW = datetime(2025, 11, 10, 8, 0)

sample_bills = [
    {"name": "Rent", "amount": 1200.0, "frequency": "monthly", "next_due": NOW + timedelta(days=5), "is_active": True},
    {"name": "Cleaner", "amount": 50.0, "frequency": "weekly", "next_due": NOW + timedelta(days=2), "is_active": True},
    {"name": "Car insurance", "amount": 600.0, "frequency": "yearly", "next_due": NOW + timedelta(days=40), "is_active": True},
    {"name": "Water", "amount": 90.0, "frequency": "quarterly", "next_due": NOW - timedelta(days=1), "is_active": True},
    {"name": "Old gym", "amount": 30.0, "frequency": "monthly", "next_due": NOW + timedelta(days=1), "is_active": False},
]


def test_monthly_equivalent():
    assert monthly_equivalent({"amount": 1200.0, "frequency": "monthly"}) == 1200.0
    assert monthly_equivalent({"amount": 50.0, "frequency": "weekly"}) == pytest.approx(216.5)
    assert monthly_equivalent({"amount": 600.0, "frequency": BillFrequency.yearly}) == pytest.approx(50.0)
    assert monthly_equivalent({"amount": 90.0, "frequency": "quarterly"}) == pytest.approx(30.0)


def test_monthly_total_skips_inactive():
    assert monthly_bills_total(sample_bills) == pytest.approx(1200 + 216.5 + 50 + 30)


def test_bills_due_within_week():
    due = bills_due_within(sample_bills, 7, NOW)
    assert [b["name"] for b in due] == ["Cleaner", "Rent"]


def test_summarize_bills():
    summary = summarize_bills(sample_bills, NOW)
    assert summary["active_count"] == 4
    assert summary["monthly_total"] == 1496.5
    assert len(summary["due_soon"]) == 2
