"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the service
do the work; these types only own the shape.

Layer rule: no imports from api/, assets/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class OtpPurpose(str, Enum):
    """What an outstanding OTP is allowed to prove. A code is never valid for another purpose."""

    register = "register"
    login = "login"


class OtpResult(str, Enum):
    """Outcome of checking a presented code against the account's OTP slot."""

    ok = "ok"
    expired = "expired"
    mismatch = "mismatch"
    no_challenge = "no_challenge"


@dataclass(frozen=True)
class OtpChallenge:
    """The OTP slot of an account.

    Either the whole challenge exists or the account's slot is None -- the
    store reads and writes all three columns together, so a half-set slot
    cannot be observed.

    code_hash is HMAC-SHA256(SECRET_KEY, code). The plaintext code only exists
    in memory between generation and delivery.
    """

    code_hash: str
    expires_at: datetime  # timezone-aware UTC
    purpose: OtpPurpose


@dataclass
class Account:
    """A registered identity.

    email is always stored trimmed and lower-cased. username is optional and
    unique when present.

    hashed_password is a bcrypt hash; the plaintext is never persisted.
    otp is None when no challenge is outstanding.
    """

    email: str
    hashed_password: str
    id: int | None = None
    username: str | None = None
    is_verified: bool = False
    otp: OtpChallenge | None = None
    created_at: str | None = None  # ISO 8601, set by store on insert
    verified_at: str | None = None
    last_login: str | None = None

    def public_profile(self) -> dict:
        """Identifier, username and email -- everything a client may see."""
        return {"id": self.id, "username": self.username, "email": self.email}
