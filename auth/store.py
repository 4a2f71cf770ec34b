"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper (same as assets/store.py).
AccountStore is the repository; _row_to_account is the mapper.
Service and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Uniqueness of email and username is enforced by UNIQUE constraints, not by
  the read-then-write pre-check in AuthService. Two concurrent inserts for the
  same email race on the constraint; exactly one wins and the other surfaces
  as DuplicateIdentityError. SQLite treats NULLs as distinct in UNIQUE
  constraints, which is what we want for the optional username.

  The OTP slot (otp_hash, otp_expires_at, otp_purpose) is written and cleared
  with a single UPDATE each, so readers never see a partially set slot.

Layer rule: no imports from api/, assets/, or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateIdentityError
from auth.models import Account, OtpChallenge, OtpPurpose

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # trimmed + lower-cased
    Column("username", String(255), unique=True),  # optional
    Column("hashed_password", Text, nullable=False),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("otp_hash", String(64)),  # HMAC-SHA256 hex
    Column("otp_expires_at", String(32)),  # ISO 8601 UTC
    Column("otp_purpose", String(16)),  # "register" | "login"
    Column("created_at", String(32), nullable=False),
    Column("verified_at", String(32)),
    Column("last_login", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(dt: datetime) -> str:
    # Fixed precision keeps lexicographic order equal to time order in SQL comparisons.
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return _to_iso(datetime.now(timezone.utc))


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address. The only form ever stored or compared."""
    return email.strip().lower()


def _normalize_username(username: str | None) -> str | None:
    if username is None:
        return None
    username = username.strip()
    return username or None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore("sqlite:///assettracker.db")
        account_id = store.create_account("a@example.com", hash_password("secret"))
        account = store.get_by_email("A@Example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_account(self, email: str, hashed_password: str, username: str | None = None) -> int:
        """Insert a new unverified account and return its assigned ID.

        Raises DuplicateIdentityError when the email or username is already
        taken. The constraint violation is the authority here -- callers may
        pre-check, but only this INSERT decides under concurrency.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        email=normalize_email(email),
                        username=_normalize_username(username),
                        hashed_password=hashed_password,
                        is_verified=0,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise DuplicateIdentityError() from exc

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by email (normalized before comparison). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_username(self, username: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _accounts.select().where(_accounts.c.username == _normalize_username(username))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def set_verified(self, account_id: int) -> bool:
        """Mark the account verified and clear its OTP slot.

        Idempotent: calling it on an already verified account leaves
        verified_at at its first value. Returns False if the account does not exist.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(
                    is_verified=1,
                    # COALESCE keeps the first verification timestamp on repeat calls.
                    verified_at=func.coalesce(_accounts.c.verified_at, _now_iso()),
                    otp_hash=None,
                    otp_expires_at=None,
                    otp_purpose=None,
                )
            )
            conn.commit()
        return result.rowcount > 0

    def set_otp(self, account_id: int, code_hash: str, expires_at: datetime, purpose: OtpPurpose) -> bool:
        """Replace the account's OTP slot. Any earlier outstanding code stops working."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(otp_hash=code_hash, otp_expires_at=_to_iso(expires_at), otp_purpose=purpose.value)
            )
            conn.commit()
        return result.rowcount > 0

    def clear_otp(self, account_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(otp_hash=None, otp_expires_at=None, otp_purpose=None)
            )
            conn.commit()
        return result.rowcount > 0

    def consume_otp(self, account_id: int, code_hash: str) -> bool:
        """Clear the slot only if it still holds code_hash.

        Compare-and-clear in one UPDATE: of two concurrent submissions of the
        same code, exactly one sees rowcount 1. Returns False when the slot was
        already cleared or replaced.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & (_accounts.c.otp_hash == code_hash))
                .values(otp_hash=None, otp_expires_at=None, otp_purpose=None)
            )
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, account_id: int) -> None:
        """Stamp the current UTC timestamp as last_login after a token is issued."""
        with self.engine.connect() as conn:
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(last_login=_now_iso()))
            conn.commit()

    def purge_unverified(self, created_before: datetime) -> int:
        """Delete accounts that never completed verification and were created before the cutoff.

        This is the expiry of a pending registration. Verified accounts are
        never touched. Returns the number of rows removed.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.delete().where(
                    (_accounts.c.is_verified == 0) & (_accounts.c.created_at < _to_iso(created_before))
                )
            )
            conn.commit()
        return result.rowcount

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    otp: OtpChallenge | None = None
    if row.otp_hash is not None and row.otp_expires_at is not None and row.otp_purpose is not None:
        otp = OtpChallenge(
            code_hash=row.otp_hash,
            expires_at=datetime.fromisoformat(row.otp_expires_at),
            purpose=OtpPurpose(row.otp_purpose),
        )
    return Account(
        id=row.id,
        email=row.email,
        username=row.username,
        hashed_password=row.hashed_password,
        is_verified=bool(row.is_verified),
        otp=otp,
        created_at=row.created_at,
        verified_at=row.verified_at,
        last_login=row.last_login,
    )
