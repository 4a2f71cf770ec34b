"""
auth/notifier.py -- Outbound OTP delivery.

The orchestrator only knows the Notifier interface:

    send_otp(address, code, purpose) -> None      raises DeliveryError

Two implementations:
  HttpMailNotifier -- POSTs a JSON message to a transactional mail API
      (MAIL_API_URL, bearer MAIL_API_KEY). Any transport error or non-2xx
      status becomes DeliveryError. The mail API owns SMTP; we never speak it.
  LogNotifier -- writes the code to the log. Debug mode only: build_notifier()
      refuses to hand it out otherwise, since the log would then hold live codes.

Layer rule: no imports from api/ or assets/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import Protocol

import requests

from auth.models import OtpPurpose
from core.config import Settings

logger = logging.getLogger("assettracker.notifier")

_SUBJECTS: dict[OtpPurpose, str] = {
    OtpPurpose.register: "Verify your email address",
    OtpPurpose.login: "Your sign-in code",
}


class DeliveryError(Exception):
    """The OTP message could not be handed to the mail transport."""


class Notifier(Protocol):
    def send_otp(self, address: str, code: str, purpose: OtpPurpose) -> None: ...


def _body(code: str, purpose: OtpPurpose, ttl_minutes: int) -> str:
    action = "finish creating your account" if purpose is OtpPurpose.register else "sign in"
    return f"Your verification code is {code}. Use it to {action}. It expires in {ttl_minutes} minutes."


class LogNotifier:
    """Development notifier: the code ends up in the server log."""

    def __init__(self, ttl_minutes: int = 10) -> None:
        self.ttl_minutes = ttl_minutes

    def send_otp(self, address: str, code: str, purpose: OtpPurpose) -> None:
        logger.info("DEV OTP for %s (%s, expires in %d min): %s", address, purpose.value, self.ttl_minutes, code)


class HttpMailNotifier:
    """Delivers OTP emails through a JSON transactional mail API."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender: str,
        timeout: float = 10.0,
        ttl_minutes: int = 10,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout
        self.ttl_minutes = ttl_minutes
        # One pooled session per notifier. Redirects off: a mail API that
        # redirects a POST is misconfigured, not something to follow.
        self._session = session or requests.Session()
        self._session.max_redirects = 0
        if api_key:
            self._session.headers["Authorization"] = f"Bearer {api_key}"

    def send_otp(self, address: str, code: str, purpose: OtpPurpose) -> None:
        payload = {
            "from": self.sender,
            "to": [address],
            "subject": _SUBJECTS[purpose],
            "text": _body(code, purpose, self.ttl_minutes),
        }
        try:
            resp = self._session.post(self.api_url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Mail API request failed for %s purpose: %s", purpose.value, type(exc).__name__)
            raise DeliveryError(str(exc)) from exc
        if not 200 <= resp.status_code < 300:
            logger.warning("Mail API returned %d for %s purpose", resp.status_code, purpose.value)
            raise DeliveryError(f"mail API returned HTTP {resp.status_code}")

    def close(self) -> None:
        self._session.close()


def build_notifier(settings: Settings) -> Notifier:
    """Pick the notifier for the configured environment."""
    ttl_minutes = max(1, settings.otp_ttl_seconds // 60)
    if settings.mail_api_url:
        return HttpMailNotifier(
            api_url=settings.mail_api_url,
            api_key=settings.mail_api_key,
            sender=settings.mail_from,
            timeout=settings.mail_timeout_seconds,
            ttl_minutes=ttl_minutes,
        )
    if not settings.debug:
        raise ValueError("MAIL_API_URL must be configured outside debug mode.")
    logger.warning("MAIL_API_URL not set -- OTP codes will be written to the log (debug mode).")
    return LogNotifier(ttl_minutes=ttl_minutes)
