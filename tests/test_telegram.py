"""Unit tests for utils.telegram."""

import requests

from futures_agent.utils import telegram
from futures_agent.utils.telegram import TelegramNotifier, send_telegram


class Response:
    def __init__(self, status_code=200, text="ok"):
        self.status_code = status_code
        self.text = text


def test_not_configured_is_skipped(monkeypatch):
    def fail(*a, **k):
        raise AssertionError("should not post")

    monkeypatch.setattr(telegram.requests, "post", fail)
    assert send_telegram("hello") is False


def test_sends_message(monkeypatch):
    sent = {}

    def post(url, json=None, timeout=None):
        sent.update(url=url, json=json)
        return Response()

    monkeypatch.setattr(telegram.requests, "post", post)
    assert send_telegram("hello", "TOKEN", "42") is True
    assert sent["url"].endswith("/botTOKEN/sendMessage")
    assert sent["json"] == {"chat_id": "42", "text": "hello"}


def test_notifier_swallows_network_errors(monkeypatch):
    def post(*a, **k):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(telegram.requests, "post", post)
    TelegramNotifier("TOKEN", "42").notify("still running")


def test_http_error_returns_false(monkeypatch):
    monkeypatch.setattr(telegram.requests, "post", lambda *a, **k: Response(500, "bad"))
    assert send_telegram("hello", "TOKEN", "42") is False
