"""Unit tests for auth/service.py -- the registration/verification/login state machine.

The service runs against an in-memory AccountStore, a capturing notifier and
an injected clock so expiry can be tested without sleeping.

Covers:
- register -> verify -> token decodes to the new account id
- expired registration code is rejected even when correct
- a consumed code never verifies twice
- delivery failure clears the slot and raises DeliveryFailedError
- login gates: credentials first, then verification
- two-step login issues a login-purpose code only after the password
- purge_unverified() honours the TTL
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

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
from auth.models import OtpPurpose
from auth.service import AuthResult, AuthService, LoginChallenge
from auth.tokens import decode_access_token
from core.config import get_settings


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(account_store, notifier, clock) -> AuthService:
    return AuthService(account_store, notifier, get_settings(), clock=clock)


@pytest.fixture
def two_step(account_store, notifier, clock) -> AuthService:
    settings = get_settings().model_copy(update={"login_otp_required": True})
    return AuthService(account_store, notifier, settings, clock=clock)


def _verified(service: AuthService, notifier, email: str, password: str = "pw") -> AuthResult:
    service.register(email, password)
    return service.verify_otp(email, notifier.last_code(email))


class TestRegister:
    def test_register_then_verify_issues_token(self, service, notifier, account_store):
        result = service.register("New@Test.com", "pw", username="newbie")
        assert result.email == "new@test.com"

        auth = service.verify_otp("new@test.com", notifier.last_code("new@test.com"))
        account = account_store.get_by_email("new@test.com")
        assert account.is_verified is True
        assert account.otp is None
        assert decode_access_token(auth.access_token)["user_id"] == account.id
        assert auth.account.public_profile() == {"id": account.id, "username": "newbie", "email": "new@test.com"}

    def test_register_requires_email_and_password(self, service):
        with pytest.raises(ValidationError):
            service.register("", "pw")
        with pytest.raises(ValidationError):
            service.register("a@test.com", "")

    def test_duplicate_email(self, service):
        service.register("dup@test.com", "pw")
        with pytest.raises(DuplicateIdentityError):
            service.register("DUP@test.com", "pw")

    def test_duplicate_lost_race_is_conflict(self, service, account_store):
        """The pre-check can pass while the INSERT still loses; that is a conflict too."""
        with patch.object(account_store, "get_by_email", return_value=None):
            account_store.create_account("race@test.com", "hash")
            with pytest.raises(DuplicateIdentityError):
                service.register("race@test.com", "pw")

    def test_password_is_hashed(self, service, account_store):
        service.register("hash@test.com", "plaintext")
        account = account_store.get_by_email("hash@test.com")
        assert account.hashed_password != "plaintext"
        assert account.hashed_password.startswith("$2")

    def test_delivery_failure_clears_slot(self, service, notifier, account_store):
        notifier.fail = True
        with pytest.raises(DeliveryFailedError):
            service.register("fail@test.com", "pw")
        account = account_store.get_by_email("fail@test.com")
        assert account is not None
        assert account.otp is None

        notifier.fail = False
        service.resend_otp("fail@test.com")
        service.verify_otp("fail@test.com", notifier.last_code("fail@test.com"))
        assert account_store.get_by_email("fail@test.com").is_verified is True


class TestVerify:
    def test_expired_code_rejected(self, service, notifier, clock, account_store):
        service.register("late@test.com", "pw")
        code = notifier.last_code("late@test.com")
        clock.advance(minutes=10, seconds=1)
        with pytest.raises(InvalidOrExpiredOtpError):
            service.verify_otp("late@test.com", code)
        assert account_store.get_by_email("late@test.com").is_verified is False

    def test_code_within_ttl_accepted(self, service, notifier, clock):
        service.register("ontime@test.com", "pw")
        code = notifier.last_code("ontime@test.com")
        clock.advance(minutes=9)
        assert service.verify_otp("ontime@test.com", code).access_token

    def test_mismatch(self, service):
        service.register("mm@test.com", "pw")
        with pytest.raises(InvalidOrExpiredOtpError):
            service.verify_otp("mm@test.com", "000000")

    def test_already_verified(self, service, notifier):
        _verified(service, notifier, "v@test.com")
        with pytest.raises(AlreadyVerifiedError):
            service.verify_otp("v@test.com", "123456")

    def test_not_found(self, service):
        with pytest.raises(NotFoundError):
            service.verify_otp("ghost@test.com", "123456")

    def test_missing_code(self, service):
        with pytest.raises(ValidationError):
            service.verify_otp("a@test.com", "  ")

    def test_lost_consume_race(self, service, notifier):
        """validate() said ok, but another request cleared the slot first."""
        service.register("race@test.com", "pw")
        code = notifier.last_code("race@test.com")
        with patch.object(service.otp, "consume", return_value=False):
            with pytest.raises(InvalidOrExpiredOtpError):
                service.verify_otp("race@test.com", code)


class TestLogin:
    def test_login_verified(self, service, notifier):
        _verified(service, notifier, "in@test.com", "pw")
        result = service.login("in@test.com", "pw")
        assert isinstance(result, AuthResult)
        assert result.expires_in == 24 * 3600

    def test_login_unknown_and_wrong_same_error(self, service, notifier):
        _verified(service, notifier, "in@test.com", "pw")
        with pytest.raises(InvalidCredentialsError) as wrong:
            service.login("in@test.com", "bad")
        with pytest.raises(InvalidCredentialsError) as unknown:
            service.login("out@test.com", "bad")
        assert wrong.value.message == unknown.value.message

    def test_login_unverified(self, service):
        service.register("pending@test.com", "pw")
        with pytest.raises(NotVerifiedError):
            service.login("pending@test.com", "pw")

    def test_login_never_not_verified_after_verification(self, service, notifier):
        _verified(service, notifier, "u@test.com", "p1")
        assert isinstance(service.login("u@test.com", "p1"), AuthResult)

    def test_two_step_login(self, two_step, notifier):
        _verified(two_step, notifier, "two@test.com", "pw")
        challenge = two_step.login("two@test.com", "pw")
        assert isinstance(challenge, LoginChallenge)

        code = notifier.last_code("two@test.com", OtpPurpose.login)
        result = two_step.verify_otp("two@test.com", code, purpose=OtpPurpose.login)
        assert isinstance(result, AuthResult)

        with pytest.raises(InvalidOrExpiredOtpError):
            two_step.verify_otp("two@test.com", code, purpose=OtpPurpose.login)

    def test_two_step_wrong_password_sends_no_code(self, two_step, notifier):
        _verified(two_step, notifier, "two@test.com", "pw")
        sent = len(notifier.sent)
        with pytest.raises(InvalidCredentialsError):
            two_step.login("two@test.com", "wrong")
        assert len(notifier.sent) == sent

    def test_login_code_cannot_verify_registration(self, two_step, notifier, account_store):
        two_step.register("cross@test.com", "pw")
        with pytest.raises(NotVerifiedError):
            two_step.verify_otp("cross@test.com", notifier.last_code("cross@test.com"), purpose=OtpPurpose.login)


class TestResend:
    def test_resend_login_purpose_rejected(self, service):
        with pytest.raises(ValidationError):
            service.resend_otp("a@test.com", purpose=OtpPurpose.login)

    def test_resend_verified(self, service, notifier):
        _verified(service, notifier, "done@test.com")
        with pytest.raises(AlreadyVerifiedError):
            service.resend_otp("done@test.com")


class TestPurge:
    def test_purge_after_ttl(self, service, account_store, clock):
        service.register("old@test.com", "pw")
        clock.advance(seconds=get_settings().unverified_account_ttl_seconds + 5)
        assert service.purge_unverified() == 1
        assert account_store.get_by_email("old@test.com") is None

    def test_purge_before_ttl(self, service, account_store):
        service.register("young@test.com", "pw")
        assert service.purge_unverified() == 0
        assert account_store.get_by_email("young@test.com") is not None

    def test_purge_spares_verified(self, service, notifier, account_store, clock):
        _verified(service, notifier, "kept@test.com")
        clock.advance(days=30)
        assert service.purge_unverified() == 0
        assert account_store.get_by_email("kept@test.com") is not None
