"""
assets/models.py -- Domain dataclass for tracked financial assets.

Pure data container with zero logic. Ownership and all queries live in
assets/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Asset:
    """One holding in an account's portfolio.

    user_id is the owning account's id. It is set from the verified token by
    the route layer, never from the request body.

    id is None before the record is written to the database.
    """

    user_id: int
    type: str  # category tag, e.g. "stock", "crypto", "cash"
    name: str
    quantity: float
    price: float  # unit price
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""

    @property
    def value(self) -> float:
        return self.quantity * self.price
