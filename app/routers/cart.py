# app/routers/cart.py
import uuid

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from app.core.auth import current_user_id
from app.database import get_session
from app.repositories.cart_repo import CartRepository
from app.schemas.cart import (
    CartItemUpdate,
    CartRead,
    CartSyncRequest,
    CatalogItemAdd,
)
from app.services.cart_service import CartService
from app.services.catalog import Catalog, get_catalog

router = APIRouter(prefix="/cart", tags=["Cart"])

cart_repo = CartRepository()
service = CartService(cart_repo)


@router.post("", response_model=CartRead, status_code=status.HTTP_201_CREATED)
def create_cart(
    session: Session = Depends(get_session),
    user_id: uuid.UUID | None = Depends(current_user_id),
):
    """
    Create a new empty cart.

    Auth:
      - Guests get an anonymous cart.
      - Signed-in users get a cart linked to their account.
    """
    cart = service.create_cart(session, user_id)
    return service.cart_summary(session, cart)


@router.get("", response_model=CartRead)
def get_or_create_cart(
    cart_id: uuid.UUID | None = None,
    session: Session = Depends(get_session),
    user_id: uuid.UUID | None = Depends(current_user_id),
):
    """
    Return the active cart.

    The signed-in user's own cart wins over cart_id; an unknown cart_id
    yields a new cart.
    """
    return service.get_cart(session, user_id, cart_id)


@router.put("/{cart_id}/items/{sanity_product_id}", response_model=CartRead)
def update_cart_item(
    cart_id: uuid.UUID,
    sanity_product_id: str,
    payload: CartItemUpdate,
    session: Session = Depends(get_session),
    user_id: uuid.UUID | None = Depends(current_user_id),
):
    """
    Create, update or remove a single cart line.

    quantity == 0 removes the line. title and price are required when
    the line does not exist yet.

    Returns the updated cart.
    """
    return service.update_cart_item(
        session=session,
        user_id=user_id,
        cart_id=cart_id,
        sanity_product_id=sanity_product_id,
        payload=payload,
    )


@router.post("/{cart_id}/products/{product_id}", response_model=CartRead)
def add_catalog_product(
    cart_id: uuid.UUID,
    product_id: str,
    payload: CatalogItemAdd | None = None,
    session: Session = Depends(get_session),
    user_id: uuid.UUID | None = Depends(current_user_id),
    catalog: Catalog = Depends(get_catalog),
):
    """
    Add a catalog product by id, snapshotting its title/price/image.
    """
    quantity = payload.quantity if payload else 1
    return service.add_catalog_product(
        session, user_id, cart_id, product_id, catalog, quantity=quantity
    )


@router.post("/sync", response_model=CartRead | None)
def sync_cart_with_user(
    payload: CartSyncRequest,
    session: Session = Depends(get_session),
    user_id: uuid.UUID | None = Depends(current_user_id),
):
    """
    Reconcile the client's cart after sign-in.

    Returns null for guests (nothing to sync).
    """
    return service.sync_cart_with_user(session, user_id, payload.cart_id)
