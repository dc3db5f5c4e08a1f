# app/schemas/cart.py
import uuid
from dataclasses import dataclass
from datetime import datetime

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


# ---- Tagged quantity changes ----


@dataclass(frozen=True)
class SetQuantity:
    """Set a line item's quantity to a positive value."""

    quantity: int

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError("SetQuantity requires quantity >= 1")


@dataclass(frozen=True)
class RemoveItem:
    """Delete a line item."""


ItemChange = SetQuantity | RemoveItem


def quantity_change(quantity: int) -> ItemChange:
    """
    Map the numeric convenience form onto an explicit change:
    anything <= 0 is a removal.
    """
    if quantity <= 0:
        return RemoveItem()
    return SetQuantity(quantity)


# ---- Payloads ----


class CartItemUpdate(SQLModel):
    """
    Payload for creating / updating / removing a cart line.

    All fields are optional. quantity == 0 removes the line; title and
    price are required only when the line does not exist yet.
    """

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    title: str | None = None
    price: float | None = Field(default=None, ge=0)
    image: str | None = None
    quantity: int | None = Field(default=None, ge=0)

    @field_validator("title")
    @classmethod
    def title_not_empty(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @field_validator("image")
    @classmethod
    def normalize_image(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return v.strip()

    def change(self) -> ItemChange | None:
        """Tagged change for this payload, or None when quantity is omitted."""
        if self.quantity is None:
            return None
        return quantity_change(self.quantity)


class CartSyncRequest(SQLModel):
    """
    Payload for syncing the anonymous cart after sign-in.
    """

    model_config = ConfigDict(extra="forbid")

    cart_id: uuid.UUID | None = None


class CatalogItemAdd(SQLModel):
    """
    Payload for adding a catalog product by id.
    """

    model_config = ConfigDict(extra="forbid")

    quantity: int = Field(default=1, gt=0)


# ---- Read models ----


class CartLineItemRead(SQLModel):
    """
    Read model for a single cart line, including line_total.
    """

    id: uuid.UUID
    sanity_product_id: str
    title: str
    price: float
    image: str
    quantity: int
    line_total: float


class CartRead(SQLModel):
    """
    Full cart response model with totals.
    """

    id: uuid.UUID
    owner_user_id: uuid.UUID | None = None
    items: list[CartLineItemRead]
    total_quantity: int
    total_price: float
    created_at: datetime
