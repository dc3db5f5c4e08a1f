# app/schemas/checkout.py
import uuid

from pydantic import ConfigDict
from sqlmodel import SQLModel


class CheckoutSessionCreate(SQLModel):
    """
    Payload for starting checkout of the active cart.
    """

    model_config = ConfigDict(extra="forbid")

    cart_id: uuid.UUID | None = None


class CheckoutSessionRead(SQLModel):
    """
    Redirect target returned by the checkout provider.
    """

    url: str


class WebhookAck(SQLModel):
    received: bool = True
