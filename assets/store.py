"""
assets/store.py -- SQLAlchemy-backed persistence for portfolio assets.

Uses SQLAlchemy Core (not ORM) so the dataclass in assets/models.py remains
the authoritative domain representation.

Pattern: Repository + Data Mapper. AssetStore is the repository;
_row_to_asset is the mapper. Route handlers never touch SQL directly.

Ownership: every single-row operation takes (asset_id, user_id) and puts BOTH
in the WHERE clause. A request for someone else's asset therefore behaves
exactly like a request for a missing one -- None / False -- and can never
read, update or delete the other user's row [IDOR guard].

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = AssetStore("sqlite:///assettracker.db")
    asset_id = store.create_asset(Asset(user_id=1, type="stock", name="ACME", quantity=3, price=10.5))
    store.list_assets(user_id=1)
    store.delete_asset(asset_id, user_id=1)
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, create_engine, event, func, select
from sqlalchemy.engine import Engine

from assets.models import Asset

# Fields a caller may change through update_asset(). user_id and id are not among them.
_MUTABLE_FIELDS = frozenset({"type", "name", "quantity", "price"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_assets = Table(
    "assets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),  # owning account id
    Column("type", String(50), nullable=False),
    Column("name", String(255), nullable=False),
    Column("quantity", Float, nullable=False),
    Column("price", Float, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode. Set per-connection; PRAGMAs are not inherited."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AssetStore:
    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # Route handlers run in a thread pool; the pool may hand a
            # connection to a different thread than the one that opened it.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def create_asset(self, asset: Asset) -> int:
        """Insert a new asset and return its assigned database ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _assets.insert().values(
                    user_id=asset.user_id,
                    type=asset.type,
                    name=asset.name,
                    quantity=asset.quantity,
                    price=asset.price,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_asset(self, asset_id: int, user_id: int) -> Optional[Asset]:
        """Fetch one asset owned by user_id. None if missing or owned by someone else."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _assets.select().where((_assets.c.id == asset_id) & (_assets.c.user_id == user_id))
            ).fetchone()
        return _row_to_asset(row) if row is not None else None

    def list_assets(self, user_id: int) -> list[Asset]:
        """Return all assets owned by user_id, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _assets.select().where(_assets.c.user_id == user_id).order_by(_assets.c.id)
            ).fetchall()
        return [_row_to_asset(r) for r in rows]

    def update_asset(self, asset_id: int, user_id: int, **fields) -> bool:
        """Update mutable fields (type, name, quantity, price) on an owned asset.

        Unknown keys raise ValueError rather than being silently ignored.
        Returns True if a row was updated, False if not found or not owned.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown asset fields: {sorted(unknown)!r}")
        if not fields:
            return self.get_asset(asset_id, user_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(
                _assets.update()
                .where((_assets.c.id == asset_id) & (_assets.c.user_id == user_id))
                .values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_asset(self, asset_id: int, user_id: int) -> bool:
        """Delete an owned asset. Returns False if not found or not owned."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _assets.delete().where((_assets.c.id == asset_id) & (_assets.c.user_id == user_id))
            )
            conn.commit()
        return result.rowcount > 0

    def get_portfolio_summary(self, user_id: int) -> dict:
        """Aggregate an account's holdings in one GROUP BY query.

        Returns:
            {"total_assets": int, "total_value": float,
             "by_type": {type: {"count": int, "value": float}}}
        """
        stmt = (
            select(
                _assets.c.type,
                func.count().label("count"),
                func.sum(_assets.c.quantity * _assets.c.price).label("value"),
            )
            .where(_assets.c.user_id == user_id)
            .group_by(_assets.c.type)
            .order_by(_assets.c.type)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        by_type = {row.type: {"count": row.count, "value": float(row.value or 0.0)} for row in rows}
        return {
            "total_assets": sum(v["count"] for v in by_type.values()),
            "total_value": sum(v["value"] for v in by_type.values()),
            "by_type": by_type,
        }

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_asset(row) -> Asset:
    return Asset(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        name=row.name,
        quantity=row.quantity,
        price=row.price,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
