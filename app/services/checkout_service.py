# app/services/checkout_service.py
import logging
import math
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.services.cart_service import CartService
from app.services.checkout_gateway import (
    CHECKOUT_COMPLETED,
    CheckoutGateway,
    CheckoutGatewayError,
    CheckoutLineItem,
)

logger = logging.getLogger(__name__)


class CheckoutService:
    """
    Hands a cart snapshot to the checkout provider and ends the cart's
    lifecycle when the provider reports a completed checkout.

    There is no "checked out" flag: deleting the cart is the completion.
    """

    def __init__(self, cart_service: CartService, cart_repo: CartRepository):
        self.cart_service = cart_service
        self.cart_repo = cart_repo

    def create_checkout_session(
        self,
        session: Session,
        user: User | None,
        cart_id: uuid.UUID | None,
        gateway: CheckoutGateway,
    ) -> str:
        """
        Create a checkout session for the active cart and return the
        redirect URL.

        Lines with an empty title, a negative or non-finite price, or
        quantity < 1 are skipped.
        """
        user_id = user.id if user else None
        cart = self.cart_service.get_or_create_cart(session, user_id, cart_id)
        items = self.cart_repo.list_items(session, cart.id)

        if not items:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cart is empty",
            )

        line_items: list[CheckoutLineItem] = []
        for it in items:
            if (
                not it.title
                or not it.title.strip()
                or not math.isfinite(it.price)
                or it.price < 0
                or it.quantity < 1
            ):
                logger.warning("Skipping invalid line %s in cart %s", it.id, cart.id)
                continue
            line_items.append(
                CheckoutLineItem(
                    title=it.title,
                    price=it.price,
                    quantity=it.quantity,
                    image=it.image,
                )
            )

        if not line_items:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No valid items in cart",
            )

        try:
            return gateway.create_session(
                line_items,
                metadata={
                    "cart_id": str(cart.id),
                    "user_id": str(user_id) if user_id else "_",
                },
                customer_email=user.email if user else None,
            )
        except CheckoutGatewayError as exc:
            logger.error("Checkout session for cart %s failed: %s", cart.id, exc)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to create checkout session",
            ) from exc

    def handle_webhook(
        self,
        session: Session,
        payload: bytes,
        signature: str | None,
        gateway: CheckoutGateway,
    ) -> None:
        """
        Verify and process a provider webhook.

        On a completed checkout the cart named in the session metadata
        is deleted. Other event types are acknowledged and ignored.
        """
        if not signature:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing Stripe signature",
            )

        try:
            event = gateway.parse_event(payload, signature)
        except CheckoutGatewayError as exc:
            logger.warning("Rejected webhook: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid Stripe signature",
            ) from exc

        if event.type != CHECKOUT_COMPLETED:
            logger.info("Unhandled event type %s", event.type)
            return

        raw_cart_id = event.metadata.get("cart_id")
        if not raw_cart_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing cart ID",
            )

        try:
            cart_id = uuid.UUID(raw_cart_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid cart ID",
            )

        cart = self.cart_repo.get_by_id(session, cart_id)
        if cart is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cart not found",
            )

        self.cart_repo.delete_cart(session, cart.id)
        logger.info(
            "Checkout %s completed; cart %s deleted", event.session_id, cart.id
        )
