"""Unit tests for auth/otp.py -- code generation, issue, validate, consume.

Covers:
- generate_code() is always six digits in [100000, 999999]
- issue() persists a digest (never the plaintext) and replaces older codes
- validate() outcomes: ok, mismatch, expired (even with the right digits), no_challenge
- a code is bound to its purpose
- consume() is compare-and-clear: the second consumer loses
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.models import OtpPurpose, OtpResult
from auth.otp import OTP_MAX, OTP_MIN, OtpManager, generate_code

SECRET = "k" * 64


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def otp(account_store, clock) -> OtpManager:
    return OtpManager(account_store, secret_key=SECRET, ttl_seconds=600, clock=clock)


@pytest.fixture
def account(account_store):
    account_id = account_store.create_account("otp@test.com", "not-a-real-hash")
    return account_store.get_by_id(account_id)


def test_generate_code_range():
    for _ in range(500):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()
        assert OTP_MIN <= int(code) <= OTP_MAX


def test_issue_stores_digest_not_code(otp, account, account_store):
    code = otp.issue(account, OtpPurpose.register)
    stored = account_store.get_by_id(account.id).otp
    assert stored is not None
    assert stored.code_hash != code
    assert stored.code_hash == otp.hash_code(code)
    assert stored.purpose is OtpPurpose.register


def test_issue_sets_ten_minute_expiry(otp, account, account_store, clock):
    otp.issue(account, OtpPurpose.register)
    stored = account_store.get_by_id(account.id).otp
    assert stored.expires_at == clock.now + timedelta(minutes=10)


def test_validate_ok_on_reloaded_account(otp, account, account_store):
    code = otp.issue(account, OtpPurpose.register)
    reloaded = account_store.get_by_id(account.id)
    assert otp.validate(reloaded, code, OtpPurpose.register) is OtpResult.ok


def test_validate_strips_whitespace(otp, account):
    code = otp.issue(account, OtpPurpose.register)
    assert otp.validate(account, f" {code} ", OtpPurpose.register) is OtpResult.ok


def test_validate_mismatch(otp, account):
    otp.issue(account, OtpPurpose.register)
    assert otp.validate(account, "000000", OtpPurpose.register) is OtpResult.mismatch


def test_correct_code_after_expiry_is_expired(otp, account, clock):
    code = otp.issue(account, OtpPurpose.register)
    clock.advance(minutes=10, seconds=1)
    assert otp.validate(account, code, OtpPurpose.register) is OtpResult.expired


def test_expiry_boundary_is_exclusive(otp, account, clock):
    code = otp.issue(account, OtpPurpose.register)
    clock.advance(minutes=9, seconds=59)
    assert otp.validate(account, code, OtpPurpose.register) is OtpResult.ok
    clock.advance(seconds=1)
    assert otp.validate(account, code, OtpPurpose.register) is OtpResult.expired


def test_no_challenge_when_never_issued(otp, account):
    assert otp.validate(account, "123456", OtpPurpose.register) is OtpResult.no_challenge


def test_purpose_mismatch_is_no_challenge(otp, account):
    code = otp.issue(account, OtpPurpose.register)
    assert otp.validate(account, code, OtpPurpose.login) is OtpResult.no_challenge


def test_reissue_invalidates_previous_code(otp, account, account_store):
    first = otp.issue(account, OtpPurpose.register)
    second = otp.issue(account, OtpPurpose.register)
    reloaded = account_store.get_by_id(account.id)
    if first != second:
        assert otp.validate(reloaded, first, OtpPurpose.register) is OtpResult.mismatch
    assert otp.validate(reloaded, second, OtpPurpose.register) is OtpResult.ok


def test_consume_then_validate_is_no_challenge(otp, account, account_store):
    code = otp.issue(account, OtpPurpose.register)
    assert otp.validate(account, code, OtpPurpose.register) is OtpResult.ok
    assert otp.consume(account) is True

    reloaded = account_store.get_by_id(account.id)
    assert reloaded.otp is None
    assert otp.validate(reloaded, code, OtpPurpose.register) is OtpResult.no_challenge


def test_concurrent_consumers_only_one_wins(otp, account, account_store):
    """Two requests that both validated the same code race on consume()."""
    code = otp.issue(account, OtpPurpose.register)
    first = account_store.get_by_id(account.id)
    second = account_store.get_by_id(account.id)
    assert otp.validate(first, code, OtpPurpose.register) is OtpResult.ok
    assert otp.validate(second, code, OtpPurpose.register) is OtpResult.ok
    assert otp.consume(first) is True
    assert otp.consume(second) is False


def test_consume_without_challenge(otp, account):
    assert otp.consume(account) is False


def test_discard_clears_slot(otp, account, account_store):
    otp.issue(account, OtpPurpose.register)
    otp.discard(account)
    assert account.otp is None
    assert account_store.get_by_id(account.id).otp is None


def test_different_keys_produce_different_digests(account_store, clock):
    a = OtpManager(account_store, secret_key=SECRET, clock=clock)
    b = OtpManager(account_store, secret_key="z" * 64, clock=clock)
    assert a.hash_code("123456") != b.hash_code("123456")
