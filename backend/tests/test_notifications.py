import json

from identity_core.notifications import service as notifications
from identity_core.notifications.service import (
    LogNotifier,
    WebhookNotifier,
    deliver_password_reset_code,
    get_notifier,
)


class _Response:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_webhook_posts_json_payload(monkeypatch):
    captured = {}

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["method"] = req.get_method()
        captured["body"] = json.loads(req.data.decode("utf-8"))
        captured["timeout"] = timeout
        return _Response()

    monkeypatch.setattr(notifications.request, "urlopen", fake_urlopen)

    WebhookNotifier("https://hooks.example.test/reset", timeout=1.5).send_password_reset_code(
        tenant_id="t1", tenant_domain="acme", email="alice@acme.test", code="AB12CD"
    )

    assert captured["url"] == "https://hooks.example.test/reset"
    assert captured["method"] == "POST"
    assert captured["timeout"] == 1.5
    assert captured["body"]["type"] == "password_reset_code"
    assert captured["body"]["to"] == "alice@acme.test"
    assert captured["body"]["code"] == "AB12CD"


def test_delivery_failure_is_reported_not_raised(monkeypatch):
    def broken_urlopen(req, timeout):
        raise OSError("connection refused")

    monkeypatch.setattr(notifications.request, "urlopen", broken_urlopen)

    delivered = deliver_password_reset_code(
        WebhookNotifier("https://hooks.example.test/reset"),
        tenant_id="t1",
        tenant_domain="acme",
        email="alice@acme.test",
        code="AB12CD",
    )

    assert delivered is False


def test_get_notifier_follows_configuration(monkeypatch):
    monkeypatch.setattr(notifications.settings, "PASSWORD_RESET_WEBHOOK_URL", None)
    assert isinstance(get_notifier(), LogNotifier)

    monkeypatch.setattr(notifications.settings, "PASSWORD_RESET_WEBHOOK_URL", "https://hooks.example.test/reset")
    notifier = get_notifier()
    assert isinstance(notifier, WebhookNotifier)
    assert notifier.url == "https://hooks.example.test/reset"
