import smtplib

from app.utils import email_service


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


def test_send_email(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)
    assert email_service.send_email("ana@example.com", "Hello", "<p>Hi</p>", "Hi") is True
    [msg] = FakeSMTP.sent
    assert msg["To"] == "ana@example.com"
    assert msg["Subject"] == "Hello"


def test_send_email_failure(monkeypatch):
    def refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "unavailable")

    monkeypatch.setattr(email_service.smtplib, "SMTP", refuse)
    assert email_service.send_email("ana@example.com", "Hello", "<p>Hi</p>") is False


def test_email_change_message(monkeypatch):
    captured = {}

    def fake_send(to_email, subject, body_html, body_text=None):
        captured.update(to=to_email, html=body_html, text=body_text)
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send)
    url = "http://localhost:3000/api/user/email/verify?token=abc"
    assert email_service.send_email_change_verification("new@example.com", "Ana", url) is True
    assert captured["to"] == "new@example.com"
    assert url in captured["html"]
    assert url in captured["text"]


def test_email_change_message_escapes_user_values(monkeypatch):
    captured = {}

    def fake_send(to_email, subject, body_html, body_text=None):
        captured.update(html=body_html, text=body_text)
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send)
    email_service.send_email_change_verification(
        "new@example.com", "<script>alert(1)</script>", "http://localhost:3000/verify?token=a&b=1"
    )
    assert "<script>" not in captured["html"]
    assert "Hello &lt;script&gt;alert(1)&lt;/script&gt;," in captured["html"]
    assert 'href="http://localhost:3000/verify?token=a&amp;b=1"' in captured["html"]
    # the plain text part is not HTML
    assert "<script>alert(1)</script>" in captured["text"]
