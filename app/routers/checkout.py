# app/routers/checkout.py
from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session

from app.core.auth import get_current_user
from app.database import get_session
from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.schemas.checkout import (
    CheckoutSessionCreate,
    CheckoutSessionRead,
    WebhookAck,
)
from app.services.cart_service import CartService
from app.services.checkout_gateway import CheckoutGateway, get_checkout_gateway
from app.services.checkout_service import CheckoutService

router = APIRouter(prefix="/checkout", tags=["Checkout"])

cart_repo = CartRepository()
service = CheckoutService(CartService(cart_repo), cart_repo)


@router.post("/session", response_model=CheckoutSessionRead)
def create_checkout_session(
    payload: CheckoutSessionCreate,
    session: Session = Depends(get_session),
    current_user: User | None = Depends(get_current_user),
    gateway: CheckoutGateway = Depends(get_checkout_gateway),
):
    """
    Start a hosted checkout for the active cart.

    Returns the redirect URL.
    """
    url = service.create_checkout_session(
        session, current_user, payload.cart_id, gateway
    )
    return CheckoutSessionRead(url=url)


@router.post("/webhook", response_model=WebhookAck)
async def checkout_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    session: Session = Depends(get_session),
    gateway: CheckoutGateway = Depends(get_checkout_gateway),
):
    """
    Checkout provider webhook.

    A completed checkout deletes the cart referenced in the session
    metadata.
    """
    body = await request.body()
    await run_in_threadpool(
        service.handle_webhook, session, body, stripe_signature, gateway
    )
    return WebhookAck()
