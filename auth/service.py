"""
auth/service.py -- Registration, verification and login state machine.

Account states:  Unregistered -> PendingVerification -> Verified
Login (two-step mode only) additionally moves Idle -> AwaitingLoginOtp -> Idle.

    register()    creates a PendingVerification account, issues a "register"
                  OTP and hands it to the notifier.
    verify_otp()  checks a code for a purpose. "register" moves the account to
                  Verified; both purposes end with a session token.
    login()       password first, then the verification gate, then either a
                  token or (login_otp_required) a "login" OTP challenge.
    resend_otp()  re-issues the registration code; the retry path after a
                  delivery failure.

Every failure leaving this module is an auth.errors.AuthError. Callers see
one code for every OTP failure reason and one code for every credential
failure reason; the precise reason is logged here at INFO.

Layer rule: no imports from api/ or assets/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from auth.errors import (
    AlreadyVerifiedError,
    DeliveryFailedError,
    DuplicateIdentityError,
    InvalidCredentialsError,
    InvalidOrExpiredOtpError,
    NotFoundError,
    NotVerifiedError,
    ValidationError,
)
from auth.models import Account, OtpPurpose, OtpResult
from auth.notifier import Notifier
from auth.otp import OtpManager, utcnow
from auth.store import AccountStore, normalize_email
from auth.tokens import authenticate_account, create_access_token, hash_password, token_lifetime_seconds
from core.config import Settings, get_settings

logger = logging.getLogger("assettracker.auth")


@dataclass(frozen=True)
class RegistrationResult:
    email: str
    message: str = "Registration successful. A verification code has been sent to your email."


@dataclass(frozen=True)
class AuthResult:
    """A successful verification or login: session token plus public profile."""

    access_token: str
    expires_in: int
    account: Account
    message: str = "Authenticated."


@dataclass(frozen=True)
class LoginChallenge:
    """Password accepted; a login OTP was sent and must be verified next."""

    email: str
    message: str = "A sign-in code has been sent to your email."


class AuthService:
    """Orchestrates AccountStore, OtpManager, the notifier and the token issuer.

    Constructed once in the application lifespan. Holds no per-request state:
    everything that varies between requests lives in the store.
    """

    def __init__(
        self,
        store: AccountStore,
        notifier: Notifier,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.settings = settings or get_settings()
        self._clock = clock
        self.otp = OtpManager(
            store,
            secret_key=self.settings.secret_key,
            ttl_seconds=self.settings.otp_ttl_seconds,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, username: str | None = None) -> RegistrationResult:
        email = normalize_email(email or "")
        if not email or not password:
            raise ValidationError("Email and password are required.")
        username = (username or "").strip() or None

        # Fast path only. The UNIQUE constraints in create_account() decide
        # under concurrency.
        if self.store.get_by_email(email) is not None:
            raise DuplicateIdentityError()
        if username is not None and self.store.get_by_username(username) is not None:
            raise DuplicateIdentityError()

        try:
            account_id = self.store.create_account(email, hash_password(password), username=username)
        except DuplicateIdentityError:
            logger.info("Registration lost uniqueness race for %s", email)
            raise
        account = self.store.get_by_id(account_id)
        logger.info("Account %d created (pending verification)", account_id)

        self._send_challenge(account, OtpPurpose.register)
        return RegistrationResult(email=email)

    def resend_otp(self, email: str, purpose: OtpPurpose = OtpPurpose.register) -> RegistrationResult:
        """Issue a fresh registration code, replacing any outstanding one."""
        if purpose is not OtpPurpose.register:
            raise ValidationError("Sign-in codes are re-sent by logging in again.")
        account = self._require_account(email)
        if account.is_verified:
            raise AlreadyVerifiedError()
        self._send_challenge(account, OtpPurpose.register)
        return RegistrationResult(email=account.email, message="A new verification code has been sent to your email.")

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_otp(self, email: str, code: str, purpose: OtpPurpose = OtpPurpose.register) -> AuthResult:
        if not (email or "").strip() or not (code or "").strip():
            raise ValidationError("Email and OTP are required.")
        account = self._require_account(email)

        if purpose is OtpPurpose.register and account.is_verified:
            raise AlreadyVerifiedError()
        if purpose is OtpPurpose.login and not account.is_verified:
            raise NotVerifiedError()

        result = self.otp.validate(account, code, purpose)
        if result is not OtpResult.ok:
            logger.info("OTP rejected for account %d (%s, %s)", account.id, purpose.value, result.value)
            raise InvalidOrExpiredOtpError()
        if not self.otp.consume(account):
            logger.info("OTP for account %d consumed by a concurrent request", account.id)
            raise InvalidOrExpiredOtpError()

        if purpose is OtpPurpose.register:
            self.store.set_verified(account.id)
            account.is_verified = True
            logger.info("Account %d verified", account.id)
        return self._issue_session(account, message="Verification successful.")

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthResult | LoginChallenge:
        if not (email or "").strip() or not password:
            raise ValidationError("Email and password are required.")

        # Password strictly before anything else -- including the verified
        # check, so an unverified flag is never revealed without the password.
        account = authenticate_account(self.store, email, password)
        if account is None:
            logger.info("Failed login for %s", normalize_email(email))
            raise InvalidCredentialsError()
        if not account.is_verified:
            raise NotVerifiedError()

        if self.settings.login_otp_required:
            self._send_challenge(account, OtpPurpose.login)
            return LoginChallenge(email=account.email)
        return self._issue_session(account, message="Logged in successfully.")

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_unverified(self) -> int:
        """Delete registrations that were never verified within the TTL."""
        cutoff = self._clock() - timedelta(seconds=self.settings.unverified_account_ttl_seconds)
        removed = self.store.purge_unverified(cutoff)
        if removed:
            logger.info("Purged %d unverified account(s) created before %s", removed, cutoff.isoformat())
        return removed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_account(self, email: str) -> Account:
        account = self.store.get_by_email(email or "")
        if account is None:
            raise NotFoundError()
        return account

    def _send_challenge(self, account: Account, purpose: OtpPurpose) -> None:
        """Issue a code and deliver it; on delivery failure the slot is cleared again.

        A cleared slot means the account is not stuck behind a code nobody
        received -- resend_otp() (or another login) starts over cleanly.
        """
        code = self.otp.issue(account, purpose)
        try:
            self.notifier.send_otp(account.email, code, purpose)
        except Exception as exc:
            logger.warning(
                "OTP delivery failed for account %d (%s): %s", account.id, purpose.value, type(exc).__name__
            )
            self.otp.discard(account)
            raise DeliveryFailedError() from exc

    def _issue_session(self, account: Account, message: str) -> AuthResult:
        self.store.update_last_login(account.id)
        token = create_access_token(account.id, account.email)
        return AuthResult(
            access_token=token,
            expires_in=token_lifetime_seconds(),
            account=account,
            message=message,
        )
