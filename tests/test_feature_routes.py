from datetime import timedelta

from bson import ObjectId

from app.utils.dates import utcnow


def _iso(dt):
    return dt.replace(microsecond=0).isoformat() + "Z"


def _expense(client, headers, note, amount, category="Other", days_ago=1):
    response = client.post("/api/transactions", json={
        "type": "expense", "amount": amount, "category": category, "note": note,
        "date": _iso(utcnow() - timedelta(days=days_ago)),
    }, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


RIDES_RULE = {"name": "Rides", "when": {"field": "note", "type": "contains", "value": "uber"}, "set": {"category": "Transport"}}


def test_rules_crud_and_order(client, auth_headers):
    first = client.post("/api/rules", json={**RIDES_RULE, "order": 2}, headers=auth_headers).json()["rule"]
    client.post("/api/rules", json={**RIDES_RULE, "name": "Coffee", "order": 1}, headers=auth_headers)
    assert [r["name"] for r in client.get("/api/rules", headers=auth_headers).json()["rules"]] == ["Coffee", "Rides"]

    updated = client.post("/api/rules", json={**RIDES_RULE, "id": first["id"], "name": "Taxi", "order": 0},
                          headers=auth_headers)
    assert updated.status_code == 200
    assert updated.json()["rule"]["name"] == "Taxi"
    assert "user_id" not in updated.json()["rule"]

    missing = client.post("/api/rules", json={**RIDES_RULE, "id": str(ObjectId())}, headers=auth_headers)
    assert missing.status_code == 404
    assert missing.json() == {"error": "rule_not_found"}

    assert client.delete("/api/rules/bad", headers=auth_headers).json() == {"error": "bad_id"}
    assert client.delete(f"/api/rules/{first['id']}", headers=auth_headers).json() == {"success": True}
    assert [r["name"] for r in client.get("/api/rules", headers=auth_headers).json()["rules"]] == ["Coffee"]


def test_rule_payload_validation(client, auth_headers):
    bad_field = {**RIDES_RULE, "when": {"field": "amount", "type": "contains", "value": "1"}}
    response = client.post("/api/rules", json=bad_field, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"


def test_apply_rules_to_existing(client, auth_headers):
    tx = _expense(client, auth_headers, "Uber ride home", 18)
    _expense(client, auth_headers, "Groceries", 40)
    client.post("/api/rules", json=RIDES_RULE, headers=auth_headers)

    assert client.post("/api/rules/apply", headers=auth_headers).json() == {"updated": 1}
    assert client.post("/api/rules/apply", headers=auth_headers).json() == {"updated": 0}

    notes = {t["note"]: t["category"] for t in client.get("/api/transactions", headers=auth_headers).json()}
    assert notes == {tx["note"]: "Transport", "Groceries": "Other"}


def test_insights_and_apply_category(client, auth_headers):
    for days_ago in (3, 33, 63):
        _expense(client, auth_headers, "Streamly", 9.99, days_ago=days_ago)

    insights = client.get("/api/ai/insights", headers=auth_headers).json()["insights"]
    [suggestion] = [i for i in insights if i["title"] == "Possible Subscriptions"]
    assert suggestion["action"]["notes"] == ["streamly"]

    applied = client.post("/api/ai/insights/apply", json={"action": suggestion["action"]}, headers=auth_headers)
    assert applied.json() == {"updated": 3}
    categories = {t["category"] for t in client.get("/api/transactions", headers=auth_headers).json()}
    assert categories == {"Subscriptions"}


def test_apply_category_covers_every_matching_note(client, auth_headers):
    _expense(client, auth_headers, "Streamly", 9.99)
    refund = client.post("/api/transactions", json={
        "type": "income", "amount": 9.99, "category": "Refund", "note": " STREAMLY ",
    }, headers=auth_headers)
    assert refund.status_code == 201

    action = {"type": "set_category_for_notes", "notes": ["streamly"], "category": "Streaming"}
    applied = client.post("/api/ai/insights/apply", json={"action": action}, headers=auth_headers)
    assert applied.json() == {"updated": 2}
    categories = {t["type"]: t["category"] for t in client.get("/api/transactions", headers=auth_headers).json()}
    assert categories == {"expense": "Streaming", "income": "Streaming"}


def test_generate_insights_alias(client, auth_headers):
    _expense(client, auth_headers, "Rent", 1200, "Housing")
    listed = client.get("/api/ai/insights", headers=auth_headers).json()["insights"]
    generated = client.post("/api/ai/insights/generate", headers=auth_headers)
    assert generated.status_code == 200
    assert [i["title"] for i in generated.json()["insights"]] == [i["title"] for i in listed]


def test_subscriptions_route(client, auth_headers):
    for days_ago in (5, 35, 65):
        _expense(client, auth_headers, "Netflix", 15, "Entertainment", days_ago=days_ago)
    _expense(client, auth_headers, "Walmart grocery", 60, "Food")

    [sub] = client.get("/api/ai/subscriptions", headers=auth_headers).json()["subs"]
    assert sub["note"] == "netflix"
    assert sub["frequency"] == "monthly"
    assert sub["monthly_estimate"] == 15.0


def test_insights_flag_anomalies(client, auth_headers):
    tx = _expense(client, auth_headers, "TV", 900)
    response = client.post("/api/ai/insights/apply",
                           json={"action": {"type": "flag_anomalies", "transaction_ids": [tx["id"], "junk"]}},
                           headers=auth_headers)
    assert response.json() == {"flagged": 1}
    [listed] = client.get("/api/transactions", headers=auth_headers).json()
    assert listed["anomaly_flagged"] is True


def test_insights_apply_errors(client, auth_headers):
    cases = [
        ({"action": None}, "missing_or_invalid_action"),
        ({"action": {"type": "set_category_for_notes", "notes": []}}, "notes_required"),
        ({"action": {"type": "flag_anomalies"}}, "transaction_ids_required"),
        ({"action": {"type": "explode"}}, "unsupported_action_type"),
    ]
    for body, code in cases:
        response = client.post("/api/ai/insights/apply", json=body, headers=auth_headers)
        assert response.status_code == 400
        assert response.json() == {"error": code}


def test_health_score_and_alerts(client, auth_headers):
    _expense(client, auth_headers, "Rent", 1200, "Housing", days_ago=5)
    score = client.get("/api/ai/health-score", headers=auth_headers).json()
    assert 0 <= score["score"] <= 100
    assert len(score["components"]) == 5

    alerts = client.get("/api/ai/alerts", headers=auth_headers).json()["alerts"]
    assert isinstance(alerts, list)


def test_recurring_detection_flow(client, auth_headers):
    for days_ago in (61, 31, 1):
        _expense(client, auth_headers, "Netflix", 15.99, "Subscriptions", days_ago=days_ago)
    _expense(client, auth_headers, "Bakery", 6, "Food", days_ago=2)

    assert client.post("/api/recurring-expenses/detect", headers=auth_headers).json() == {
        "detected": 1, "linked_transactions": 3,
    }

    [recurring] = client.get("/api/recurring-expenses", headers=auth_headers).json()["recurring_expenses"]
    assert recurring["name"] == "netflix"
    assert recurring["frequency"] == "monthly"
    assert recurring["occurrence_count"] == 3

    linked = client.get(f"/api/recurring-expenses/{recurring['id']}/transactions", headers=auth_headers).json()
    assert len(linked["transactions"]) == 3
    assert all(t["is_recurring"] for t in linked["transactions"])

    ics = client.get("/api/calendar/ics", headers=auth_headers)
    assert ics.status_code == 200
    assert ics.headers["content-type"].startswith("text/calendar")
    assert ics.text.count("BEGIN:VEVENT") == 3
    assert "SUMMARY:netflix (Subscriptions)" in ics.text

    toggled = client.patch(f"/api/recurring-expenses/{recurring['id']}/toggle", headers=auth_headers).json()
    assert toggled["recurring_expense"]["is_active"] is False
    assert client.get("/api/recurring-expenses", headers=auth_headers).json()["recurring_expenses"] == []


def test_recurring_errors(client, auth_headers):
    assert client.patch("/api/recurring-expenses/zzz/toggle", headers=auth_headers).json() == {"error": "bad_id"}
    missing = client.get(f"/api/recurring-expenses/{ObjectId()}/transactions", headers=auth_headers)
    assert missing.status_code == 404
    assert missing.json() == {"error": "recurring_expense_not_found"}


def test_calendar_includes_bills(client, auth_headers):
    due = _iso(utcnow() + timedelta(days=10))
    client.post("/api/bills", json={"name": "Rent", "amount": 900, "next_due": due}, headers=auth_headers)
    body = client.get("/api/calendar/ics", headers=auth_headers).text
    assert body.startswith("BEGIN:VCALENDAR")
    assert "DESCRIPTION:Bill due: $900.00" in body


def test_monthly_report(client, auth_headers, uploads):
    for payload in (
        {"type": "expense", "amount": 1500, "category": "Rent", "date": "2025-10-01T09:00:00Z"},
        {"type": "expense", "amount": 25, "category": "Food", "note": "Café", "date": "2025-10-02T09:00:00Z"},
        {"type": "income", "amount": 3000, "category": "Salary", "date": "2025-10-25T09:00:00Z"},
        {"type": "expense", "amount": 99, "category": "Food", "date": "2025-11-01T09:00:00Z"},
    ):
        client.post("/api/transactions", json=payload, headers=auth_headers)

    response = client.get("/api/reports/monthly/2025-10", headers=auth_headers)
    assert response.status_code == 200
    report = response.json()
    assert report["transaction_count"] == 3
    assert report["total_expenses"] == 1525
    assert report["net"] == 1475
    assert report["categories"] == {"Rent": 1500, "Food": 25}
    assert [s["amount"] for s in report["spikes"]] == [1500]

    keys = sorted(uploads)
    assert [k.rsplit(".", 1)[1] for k in keys] == ["csv", "pdf"]
    assert uploads[keys[1]][0][:4] == b"%PDF"
    assert report["pdf_report_url"].endswith(keys[1])
    assert report["csv_report_url"].endswith(keys[0])


def test_monthly_report_errors(client, auth_headers):
    assert client.get("/api/reports/monthly/october", headers=auth_headers).json() == {"error": "bad_month"}
    empty = client.get("/api/reports/monthly/2020-01", headers=auth_headers)
    assert empty.status_code == 404
    assert empty.json() == {"error": "no_transactions_for_month"}
