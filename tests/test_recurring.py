from datetime import datetime, timedelta

from app.utils.recurring import (
    are_similar,
    detect_recurring,
    determine_frequency,
    matches_common_pattern,
    matches_recurring,
    normalize_description,
)

NOW = datetime(2025, 6, 30, 12, 0)


def _expense(note, amount, date, category="Subscriptions"):
    return {"type": "expense", "amount": amount, "category": category, "note": note, "date": date}


# weekly meal kit without any bill keyword, a gym with irregular gaps,
# and a store that only shows up now and then
sample_transactions = [
    _expense("Blue Apron Box", 59.99, datetime(2025, 6, 2, 10), "Food"),
    _expense("Blue Apron Box", 59.99, datetime(2025, 6, 9, 10), "Food"),
    _expense("Blue Apron Box #4411", 61.50, datetime(2025, 6, 16, 10), "Food"),
    _expense("Blue Apron Box", 59.99, datetime(2025, 6, 23, 10), "Food"),
    _expense("Gym Membership", 40.0, datetime(2025, 3, 1, 9), "Health"),
    _expense("Gym Membership", 40.0, datetime(2025, 3, 21, 9), "Health"),
    _expense("Gym Membership", 40.0, datetime(2025, 5, 5, 9), "Health"),
    _expense("Random store purchase", 12.0, datetime(2025, 5, 1, 9), "Shopping"),
    _expense("Random store purchase", 80.0, datetime(2025, 5, 4, 9), "Shopping"),
    _expense("Random store purchase", 30.0, datetime(2025, 6, 13, 9), "Shopping"),
]


def test_normalize_description_strips_noise():
    assert normalize_description("NETFLIX.COM #123456 11/05") == "netflix.com"
    assert normalize_description("  Spotify   Premium ") == "spotify premium"
    assert normalize_description(None) == ""


def test_similarity_uses_significant_words():
    assert are_similar("netflix monthly plan", "netflix monthly")
    assert not are_similar("coffee shop", "grocery store")
    # words of two characters or fewer never count
    assert not are_similar("a b", "a b")


def test_common_patterns():
    assert matches_common_pattern("city water bill")
    assert matches_common_pattern("spotify")
    assert not matches_common_pattern("birthday cake")


def test_detect_recurring_by_interval_or_keyword():
    found = {candidate.name: candidate for candidate in detect_recurring(sample_transactions, NOW)}
    assert set(found) == {"blue apron box", "gym membership"}
    assert len(found["blue apron box"].transactions) == 4


def test_detect_recurring_respects_lookback():
    later = NOW + timedelta(days=120)
    names = [candidate.name for candidate in detect_recurring(sample_transactions, later)]
    assert "gym membership" not in names


def test_detect_recurring_ignores_income():
    income = [dict(tx, type="income") for tx in sample_transactions]
    assert detect_recurring(income, NOW) == []


def test_determine_frequency():
    def series(gap, count=3):
        start = datetime(2024, 1, 1)
        return [{"date": start + timedelta(days=gap * i)} for i in range(count)]

    assert determine_frequency(series(1)) == "daily"
    assert determine_frequency(series(7)) == "weekly"
    assert determine_frequency(series(14)) == "biweekly"
    assert determine_frequency(series(30)) == "monthly"
    assert determine_frequency(series(365)) == "yearly"
    assert determine_frequency(series(60)) == "monthly"
    assert determine_frequency(series(30, count=1)) == "monthly"


def test_candidate_document():
    [meal_kit] = [c for c in detect_recurring(sample_transactions, NOW) if c.name == "blue apron box"]
    doc = meal_kit.to_document()
    assert doc["frequency"] == "weekly"
    assert doc["category"] == "Food"
    assert doc["occurrence_count"] == 4
    assert doc["first_detected"] == datetime(2025, 6, 2, 10)
    assert doc["last_seen"] == datetime(2025, 6, 23, 10)
    assert doc["average_amount"] == 60.37
    assert doc["patterns"]["amount_range"] == {"min": 59.99, "max": 61.50}
    assert doc["patterns"]["descriptions"] == ["Blue Apron Box", "Blue Apron Box #4411"]
    # 2025-06-02 is a Monday
    assert doc["patterns"]["day_of_week"] == 1
    assert "day_of_month" not in doc["patterns"]


def test_matches_recurring():
    recurring = {
        "category": "Health",
        "patterns": {"descriptions": ["Gym Membership"], "amount_range": {"min": 40.0, "max": 40.0}},
    }
    assert matches_recurring(_expense("GYM MEMBERSHIP 06/01", 42.0, NOW, "Health"), recurring)
    assert not matches_recurring(_expense("Gym Membership", 42.0, NOW, "Food"), recurring)
    assert not matches_recurring(_expense("Gym Membership", 80.0, NOW, "Health"), recurring)
    assert not matches_recurring(_expense("Yoga retreat", 40.0, NOW, "Health"), recurring)
