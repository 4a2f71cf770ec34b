"""
auth/otp.py -- One-time passcode lifecycle: generate, issue, validate, consume.

Codes are six decimal digits drawn uniformly from 100000..999999 with the
`secrets` CSPRNG, so a code never has a leading zero and is never shorter
than six characters.

Only one challenge is outstanding per account. issue() overwrites the slot,
which invalidates whatever code was sent before.

Storage: the slot holds HMAC-SHA256(SECRET_KEY, code), never the code itself.
A database leak does not leak live codes, and comparison is a constant-time
digest check.

Consumption is caller-driven. validate() is read-only; the orchestrator calls
consume() once validate() says ok, and only applies the purpose-specific
success action if consume() confirms it won the compare-and-clear.
Validating a consumed slot returns OtpResult.no_challenge -- it never raises.

Layer rule: no imports from api/ or assets/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import Account, OtpChallenge, OtpPurpose, OtpResult
from auth.store import AccountStore

OTP_MIN = 100000
OTP_MAX = 999999


def generate_code() -> str:
    """Return a uniformly random six-digit code in [100000, 999999]."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OtpManager:
    """Binds OTP challenges to accounts and checks presented codes.

    Usage:
        otp = OtpManager(store, secret_key=settings.secret_key, ttl_seconds=600)
        code = otp.issue(account, OtpPurpose.register)
        result = otp.validate(account_reloaded, "123456", OtpPurpose.register)
        if result is OtpResult.ok and otp.consume(account_reloaded):
            ...  # apply the success action
    """

    def __init__(
        self,
        store: AccountStore,
        secret_key: str,
        ttl_seconds: int = 600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._key = secret_key.encode("utf-8")
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def hash_code(self, code: str) -> str:
        return hmac.new(self._key, code.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self, account: Account, purpose: OtpPurpose) -> str:
        """Generate a code, persist its digest with expiry and purpose, and return the plaintext.

        The plaintext goes to the notifier and nowhere else.
        """
        code = generate_code()
        expires_at = self._clock() + self.ttl
        code_hash = self.hash_code(code)
        self._store.set_otp(account.id, code_hash, expires_at, purpose)
        account.otp = OtpChallenge(code_hash=code_hash, expires_at=expires_at, purpose=purpose)
        return code

    def validate(self, account: Account, presented: str, purpose: OtpPurpose) -> OtpResult:
        """Check a presented code against the account's slot without consuming it.

        Both expiry and equality are always evaluated; an expired code is
        rejected even when the digits match.
        """
        challenge = account.otp
        if challenge is None or challenge.purpose is not purpose:
            return OtpResult.no_challenge
        candidate = (presented or "").strip()
        matches = hmac.compare_digest(self.hash_code(candidate), challenge.code_hash)
        if self._clock() >= challenge.expires_at:
            return OtpResult.expired
        if not matches:
            return OtpResult.mismatch
        return OtpResult.ok

    def consume(self, account: Account) -> bool:
        """Atomically clear the slot validated a moment ago.

        Returns False if another request consumed or replaced it first, in
        which case the caller must treat the code as spent.
        """
        if account.otp is None:
            return False
        consumed = self._store.consume_otp(account.id, account.otp.code_hash)
        account.otp = None
        return consumed

    def discard(self, account: Account) -> None:
        """Drop an issued challenge that was never delivered."""
        self._store.clear_otp(account.id)
        account.otp = None
