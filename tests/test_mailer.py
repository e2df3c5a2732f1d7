import copy

import mailer
from config import get_settings
from mailer import Mailer


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout):
        self.host = host
        self.port = port
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def send_message(self, msg):
        self.calls.append(("send", msg["To"], msg["Subject"]))


def smtp_settings(**overrides):
    settings = copy.copy(get_settings())
    settings.smtp_host = "smtp.example.com"
    settings.smtp_port = 587
    settings.smtp_user = "mailer"
    settings.smtp_password = "pw"
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def test_starttls_relay(monkeypatch) -> None:
    FakeSMTP.instances = []
    monkeypatch.setattr(mailer.smtplib, "SMTP", FakeSMTP)

    Mailer(smtp_settings()).send("ada@example.com", "Password Reset", "link")

    (smtp,) = FakeSMTP.instances
    assert (smtp.host, smtp.port) == ("smtp.example.com", 587)
    assert smtp.calls == [
        "starttls",
        ("login", "mailer"),
        ("send", "ada@example.com", "Password Reset"),
    ]


def test_port_465_uses_implicit_tls(monkeypatch) -> None:
    FakeSMTP.instances = []
    monkeypatch.setattr(mailer.smtplib, "SMTP_SSL", FakeSMTP)

    Mailer(smtp_settings(smtp_port=465, smtp_user="")).send("a@b.c", "Hi", "text")

    (smtp,) = FakeSMTP.instances
    assert smtp.calls == [("send", "a@b.c", "Hi")]


def test_without_relay_the_message_is_logged(monkeypatch, caplog) -> None:
    def refuse(*args, **kwargs):
        raise AssertionError("SMTP should not be used")

    monkeypatch.setattr(mailer.smtplib, "SMTP", refuse)
    caplog.set_level("INFO", logger="mailer")

    Mailer(smtp_settings(smtp_host="")).send("a@b.c", "Hi", "reset link here")

    assert "mail_preview" in caplog.text
    assert "reset link here" in caplog.text
