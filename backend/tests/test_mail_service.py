import smtplib
import pytest
from app.services.mail_service import Mailer, SmtpMailer


class RecordingSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.logged_in = None
        self.messages = []
        RecordingSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def login(self, username, password):
        self.logged_in = (username, password)

    def send_message(self, message):
        self.messages.append(message)


class RefusingSMTP(RecordingSMTP):
    def __init__(self, host, port, timeout=None):
        raise ConnectionRefusedError("connection refused")


def make_mailer(username="sender@x.com", password="app-password"):
    return SmtpMailer(
        host="smtp.test",
        port=465,
        username=username,
        password=password,
        from_name="InnovaTube",
        timeout=3.0,
    )


def test_unconfigured_mailer_skips_delivery(monkeypatch):
    RecordingSMTP.instances = []
    monkeypatch.setattr(smtplib, "SMTP_SSL", RecordingSMTP)

    assert make_mailer(username=None).send_reset_code("alice@x.com", "123456", 10) is False
    assert RecordingSMTP.instances == []


def test_sends_code_over_smtp(monkeypatch):
    RecordingSMTP.instances = []
    monkeypatch.setattr(smtplib, "SMTP_SSL", RecordingSMTP)

    assert make_mailer().send_reset_code("alice@x.com", "042917", 10) is True

    smtp = RecordingSMTP.instances[0]
    assert (smtp.host, smtp.port, smtp.timeout) == ("smtp.test", 465, 3.0)
    assert smtp.logged_in == ("sender@x.com", "app-password")
    message = smtp.messages[0]
    assert message["To"] == "alice@x.com"
    assert message["From"] == "InnovaTube <sender@x.com>"
    assert "042917" in message.get_body(preferencelist=("plain",)).get_content()
    assert "10 minutes" in message.get_body(preferencelist=("html",)).get_content()


def test_delivery_failure_is_swallowed(monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP_SSL", RefusingSMTP)

    assert make_mailer().send_reset_code("alice@x.com", "123456", 10) is False


def test_mailer_interface_is_abstract():
    with pytest.raises(TypeError):
        Mailer()
