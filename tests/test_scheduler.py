from app.db import recurring, users
from app.utils import scheduler


def test_detection_job_runs_per_user(monkeypatch):
    monkeypatch.setattr(users, "list_user_ids", lambda: ["u1", "u2", "u3"])

    def fake_detection(user_id):
        if user_id == "u2":
            raise RuntimeError("boom")
        return {"detected": 2, "linked_transactions": 5}

    monkeypatch.setattr(recurring, "run_detection", fake_detection)
    # a failing user is logged and skipped
    assert scheduler.recurring_detection_job() == 4


def test_status_when_stopped():
    assert scheduler.get_scheduler_status() == {"running": False}


def test_start_and_stop(monkeypatch):
    monkeypatch.setattr(scheduler.settings, "RECURRING_DETECTION_HOUR", 4)
    scheduler.start_scheduler()
    try:
        status = scheduler.get_scheduler_status()
        assert status["running"] is True
        assert [job["id"] for job in status["jobs"]] == [scheduler.JOB_ID]
    finally:
        scheduler.stop_scheduler()
    assert scheduler.get_scheduler_status() == {"running": False}
