# app/models/cart.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Cart(SQLModel, table=True):
    """
    One shopping session's cart.

    - Anonymous carts have no owner.
    - At most one cart may be owned by a given user (unique owner_user_id).
    - A cart with zero items is still a valid cart.
    """

    __tablename__ = "carts"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    owner_user_id: uuid.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        unique=True,
        index=True,
        description="Authenticated owner; null for anonymous carts",
    )

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class CartLineItem(SQLModel, table=True):
    """
    One product line inside a cart.

    title / price / image are a snapshot of the catalog entry at add-time
    and are never refreshed. quantity is always >= 1; a quantity of 0 is
    expressed by deleting the row.
    """

    __tablename__ = "cart_line_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "sanity_product_id", name="uq_cart_line_product"),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    cart_id: uuid.UUID = Field(
        foreign_key="carts.id",
        index=True,
    )

    sanity_product_id: str = Field(
        index=True,
        description="Catalog product reference (weak, not owned)",
    )

    title: str
    price: float = Field(ge=0, description="Unit price when added to cart")
    image: str = ""

    quantity: int = Field(
        gt=0,
        description="Must be >= 1",
    )

    created_at: datetime = Field(default_factory=_utcnow)
