"""
Outbound "deliver this code to this address" hook.

Delivery is fire-and-forget from the identity core's point of view: callers
report their own success regardless of what happens here.
"""
import json
import logging
from typing import Protocol
from urllib import request

from identity_core.core.config import settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send_password_reset_code(self, *, tenant_id: str, tenant_domain: str, email: str, code: str) -> None:
        ...


class LogNotifier:
    """Used when no delivery webhook is configured (local development)."""

    def send_password_reset_code(self, *, tenant_id: str, tenant_domain: str, email: str, code: str) -> None:
        logger.info(
            "No reset-code delivery configured; code for %s on tenant %s left undelivered",
            email,
            tenant_domain,
        )


class WebhookNotifier:
    def __init__(self, url: str, timeout: float = 3.0):
        self.url = url
        self.timeout = timeout

    def send_password_reset_code(self, *, tenant_id: str, tenant_domain: str, email: str, code: str) -> None:
        body = json.dumps(
            {
                "type": "password_reset_code",
                "tenant_id": tenant_id,
                "tenant_domain": tenant_domain,
                "to": email,
                "code": code,
                "expires_in_minutes": settings.PASSWORD_RESET_CODE_MINUTES,
            }
        ).encode("utf-8")
        req = request.Request(
            self.url,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with request.urlopen(req, timeout=self.timeout):
            pass


def deliver_password_reset_code(
    notifier: Notifier, *, tenant_id: str, tenant_domain: str, email: str, code: str
) -> bool:
    try:
        notifier.send_password_reset_code(
            tenant_id=tenant_id, tenant_domain=tenant_domain, email=email, code=code
        )
    except Exception:
        logger.exception("Reset-code delivery failed for %s on tenant %s", email, tenant_domain)
        return False
    return True


def get_notifier() -> Notifier:
    if settings.PASSWORD_RESET_WEBHOOK_URL:
        return WebhookNotifier(settings.PASSWORD_RESET_WEBHOOK_URL)
    return LogNotifier()
