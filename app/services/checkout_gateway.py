# app/services/checkout_gateway.py
"""
Checkout provider port and its Stripe adapter.

The cart engine hands over a cart snapshot and receives a redirect URL.
Completion arrives later through a signed webhook.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import stripe

from app.core.config import get_settings

CHECKOUT_COMPLETED = "checkout.session.completed"


@dataclass(frozen=True)
class CheckoutLineItem:
    title: str
    price: float
    quantity: int
    image: str = ""


@dataclass(frozen=True)
class CheckoutEvent:
    type: str
    session_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class CheckoutGatewayError(Exception):
    """Raised when the provider rejects a request or a webhook payload."""


class CheckoutGateway(ABC):
    """Abstract checkout provider."""

    @abstractmethod
    def create_session(
        self,
        line_items: list[CheckoutLineItem],
        metadata: dict[str, str],
        customer_email: str | None = None,
    ) -> str:
        """Create a hosted checkout session and return its redirect URL."""
        ...

    @abstractmethod
    def parse_event(self, payload: bytes, signature: str) -> CheckoutEvent:
        """Verify a webhook payload and return the decoded event."""
        ...


class StripeCheckoutGateway(CheckoutGateway):
    """Stripe Checkout adapter."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str | None,
        base_url: str,
        currency: str = "usd",
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.currency = currency

    def create_session(
        self,
        line_items: list[CheckoutLineItem],
        metadata: dict[str, str],
        customer_email: str | None = None,
    ) -> str:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                payment_method_types=["card"],
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {
                                "name": it.title,
                                "images": [it.image] if it.image else [],
                            },
                            # Stripe amounts are in the smallest currency unit
                            "unit_amount": round(it.price * 100),
                        },
                        "quantity": it.quantity,
                    }
                    for it in line_items
                ],
                success_url=(
                    f"{self.base_url}/checkout/success"
                    "?session_id={CHECKOUT_SESSION_ID}"
                ),
                cancel_url=self.base_url,
                customer_email=customer_email,
                metadata=metadata,
            )
        except stripe.StripeError as exc:
            raise CheckoutGatewayError(str(exc)) from exc

        if not session.url:
            raise CheckoutGatewayError("Failed to create checkout session")
        return session.url

    def parse_event(self, payload: bytes, signature: str) -> CheckoutEvent:
        if not self.webhook_secret:
            raise CheckoutGatewayError("Missing STRIPE_WEBHOOK_SECRET")

        try:
            event = stripe.Webhook.construct_event(
                payload, signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as exc:
            raise CheckoutGatewayError("Invalid Stripe signature") from exc
        except ValueError as exc:
            raise CheckoutGatewayError("Malformed webhook payload") from exc

        obj = event.data.object
        metadata = getattr(obj, "metadata", None)
        return CheckoutEvent(
            type=event.type,
            session_id=getattr(obj, "id", None),
            metadata=metadata.to_dict() if metadata else {},
        )


def get_checkout_gateway() -> CheckoutGateway:
    """
    FastAPI dependency returning the configured checkout provider.

    Raises:
        RuntimeError: if STRIPE_SECRET_KEY is not set.
    """
    settings = get_settings()
    if not settings.STRIPE_SECRET_KEY:
        raise RuntimeError("Missing STRIPE_SECRET_KEY in .env")
    return StripeCheckoutGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        base_url=settings.STOREFRONT_BASE_URL,
        currency=settings.CHECKOUT_CURRENCY,
    )
