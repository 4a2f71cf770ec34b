"""
auth/tokens.py -- JWT session tokens and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       account id (as "sub" and "user_id"), email, issue time and expiry.
       decode_access_token() distinguishes expired from otherwise invalid
       tokens by raising TokenExpiredError / InvalidTokenError; it never
       touches the account store.

  Passwords: bcrypt used directly (no passlib wrapper). The work factor comes
       from Settings.bcrypt_rounds (default 10). The _DUMMY_HASH constant
       enables timing equalization in authenticate_account() so response time
       does not reveal whether an email is registered [C1].

  SECRET_KEY: sourced from core.config.get_settings(). Production refuses to
       start without one; there is no hardcoded fallback [M7].

Layer rule: no imports from api/ or assets/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidTokenError, TokenExpiredError
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore

logger = logging.getLogger("assettracker.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# Claims a caller may not override through extra_claims.
_RESERVED_CLAIMS = frozenset({"sub", "user_id", "email", "iat", "exp"})

# ---------------------------------------------------------------------------
# Password hashing
#
# bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug detection
# trips over bcrypt 4.x. Passwords are capped at 72 bytes by bcrypt; the API
# layer enforces max_length=72 on the password field.
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store -- treat as a mismatch.
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load with the configured cost so an unknown email
# costs the same bcrypt work as a wrong password.
_DUMMY_HASH: str = hash_password("assettracker_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    account_id: int,
    email: str,
    expire_seconds: int = 0,
    extra_claims: dict | None = None,
) -> str:
    """Encode a signed JWT asserting the account's identity.

    Args:
        account_id:     Numeric account ID stored in the DB.
        email:          Normalized email, informational only.
        expire_seconds: Lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds (24 hours).
        extra_claims:   Additional non-reserved claims to embed.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    issued_at = datetime.now(timezone.utc)
    payload: dict = {}
    if extra_claims:
        payload.update({k: v for k, v in extra_claims.items() if k not in _RESERVED_CLAIMS})
    payload.update(
        {
            "sub": str(account_id),
            "user_id": account_id,
            "email": email,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=duration),
        }
    )
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry and return the claims.

    Raises TokenExpiredError for a well-signed but expired token and
    InvalidTokenError for anything else (bad signature, malformed token,
    missing or non-integer user_id). Pure function of the token and the key.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError() from exc
    except JWTError as exc:
        raise InvalidTokenError() from exc
    user_id = payload.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool) or payload.get("sub") != str(user_id):
        raise InvalidTokenError()
    return payload


def token_lifetime_seconds() -> int:
    return _settings.token_expire_seconds


# ---------------------------------------------------------------------------
# Account authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_account(store: AccountStore, email: str, password: str) -> Account | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the Account on success, None on any failure. Verification state is
    NOT checked here -- the caller decides what an unverified account means.
    """
    account = store.get_by_email(email)
    if account is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, account.hashed_password):
        return None
    return account
