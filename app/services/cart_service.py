# app/services/cart_service.py
import logging
import math
import uuid

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from app.models.cart import Cart, CartLineItem
from app.repositories.cart_repo import CartRepository
from app.schemas.cart import (
    CartItemUpdate,
    CartLineItemRead,
    CartRead,
    ItemChange,
    RemoveItem,
    SetQuantity,
)
from app.services.cart_merge import merge
from app.services.catalog import Catalog

logger = logging.getLogger(__name__)

UNTITLED_PRODUCT = "Untitled Product"


class CartService:
    """
    Business logic for carts.

    Responsibilities:
      - one user, one cart: an owned cart always wins over a context cart id
      - validate line writes before touching storage
      - quantity 0 deletes a line; existing lines keep their add-time snapshot
      - fold an anonymous cart into the owned cart on sign-in
      - compute line totals and cart totals
    """

    def __init__(self, cart_repo: CartRepository):
        self.cart_repo = cart_repo

    # ---- internal helpers ----

    def _resolve_context_cart(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        cart_id: uuid.UUID | None,
    ) -> Cart | None:
        """
        Look up a cart id supplied by the client.

        A cart owned by somebody else does not resolve for this caller.
        """
        if cart_id is None:
            return None
        cart = self.cart_repo.get_by_id(session, cart_id)
        if cart is None:
            return None
        if cart.owner_user_id is not None and cart.owner_user_id != user_id:
            logger.warning("Cart %s is owned by another user; ignoring", cart_id)
            return None
        return cart

    def _apply_change(
        self,
        session: Session,
        cart: Cart,
        existing: CartLineItem | None,
        sanity_product_id: str,
        payload: CartItemUpdate,
        change: ItemChange | None,
    ) -> None:
        if existing is not None:
            if isinstance(change, RemoveItem):
                self.cart_repo.delete_line_item(session, existing.id, commit=False)
            elif isinstance(change, SetQuantity):
                # title/price/image of an existing line stay frozen
                self.cart_repo.update_line_item_quantity(
                    session, existing.id, change.quantity, commit=False
                )
            else:
                return
        elif isinstance(change, SetQuantity):
            self.cart_repo.create_line_item(
                session,
                cart_id=cart.id,
                sanity_product_id=sanity_product_id,
                title=payload.title,
                price=payload.price,
                image=payload.image or "",
                quantity=change.quantity,
                commit=False,
            )
        else:
            # nothing to remove
            return

        self.cart_repo.touch(session, cart)

    # ---- read model ----

    def cart_summary(self, session: Session, cart: Cart) -> CartRead:
        """
        Return full cart read model:
          - list of CartLineItemRead (with line_total)
          - total_quantity
          - total_price
        """
        items = self.cart_repo.list_items(session, cart.id)

        item_reads: list[CartLineItemRead] = []
        total_qty = 0
        total_price = 0.0

        for it in items:
            line_total = it.quantity * it.price
            total_qty += it.quantity
            total_price += line_total

            item_reads.append(
                CartLineItemRead(
                    id=it.id,
                    sanity_product_id=it.sanity_product_id,
                    title=it.title,
                    price=it.price,
                    image=it.image,
                    quantity=it.quantity,
                    line_total=line_total,
                )
            )

        return CartRead(
            id=cart.id,
            owner_user_id=cart.owner_user_id,
            items=item_reads,
            total_quantity=total_qty,
            total_price=total_price,
            created_at=cart.created_at,
        )

    # ---- public operations ----

    def create_cart(
        self,
        session: Session,
        user_id: uuid.UUID | None = None,
    ) -> Cart:
        """
        Create an empty cart, linked to the user when authenticated.

        Raises:
            HTTPException(409): if the user already owns a cart.
        """
        try:
            cart = self.cart_repo.create_cart(session, owner_user_id=user_id)
        except IntegrityError:
            session.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User already has a cart",
            )
        logger.info("Created cart %s (owner=%s)", cart.id, user_id)
        return cart

    def get_or_create_cart(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        cart_id: uuid.UUID | None = None,
    ) -> Cart:
        """
        Resolve the active cart.

        Order:
          1. the cart owned by the authenticated user
          2. the cart named by cart_id, if it exists
          3. a brand new cart
        """
        if user_id is not None:
            owned = self.cart_repo.get_by_owner(session, user_id)
            if owned is not None:
                return owned

        cart = self._resolve_context_cart(session, user_id, cart_id)
        if cart is not None:
            return cart

        return self.create_cart(session, user_id)

    def get_cart(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        cart_id: uuid.UUID | None = None,
    ) -> CartRead:
        cart = self.get_or_create_cart(session, user_id, cart_id)
        return self.cart_summary(session, cart)

    def update_cart_item(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        cart_id: uuid.UUID | None,
        sanity_product_id: str,
        payload: CartItemUpdate,
    ) -> CartRead:
        """
        Create, update or remove one line of the cart.

        Cases:
          - existing line + quantity 0  -> delete the line
          - existing line + quantity >0 -> update quantity only
          - no line + quantity >0       -> create (title and price required)
          - no line + quantity 0/None   -> no-op

        Payload fields are validated by CartItemUpdate before we get here.
        """
        if not sanity_product_id or not sanity_product_id.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Product ID is required",
            )

        cart = self.get_or_create_cart(session, user_id, cart_id)
        resolved_id = cart.id
        existing = self.cart_repo.get_item(session, resolved_id, sanity_product_id)
        change = payload.change()

        if (
            existing is None
            and isinstance(change, SetQuantity)
            and (payload.title is None or payload.price is None)
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Title and price are required for new items",
            )

        try:
            self._apply_change(
                session, cart, existing, sanity_product_id, payload, change
            )
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception(
                "Failed to update cart %s item %s", resolved_id, sanity_product_id
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={
                    "message": "Failed to update cart",
                    "cart_id": str(resolved_id),
                    "sanity_product_id": sanity_product_id,
                    "reason": str(exc),
                },
            ) from exc

        reloaded = self.cart_repo.get_by_id(session, resolved_id)
        return self.cart_summary(session, reloaded)

    def sync_cart_with_user(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        anonymous_cart_id: uuid.UUID | None,
    ) -> CartRead | None:
        """
        Reconcile the client's cart with the signed-in user's cart.

        Decision table (first match wins):
          1. no user                              -> None
          2. no anonymous id, owned cart exists   -> owned cart
          3. no anonymous id, no owned cart       -> new owned cart
          4. neither cart resolves                -> new owned cart
          5. owned cart is the anonymous cart     -> owned cart
          6. only the anonymous cart exists       -> claim it for the user
          7. both exist                           -> merge into owned, delete anonymous

        The owned cart is never deleted here. In case 7 every line write is
        flushed before the anonymous cart delete is issued, and the whole
        merge commits as one transaction.
        """
        if user_id is None:
            return None

        owned = self.cart_repo.get_by_owner(session, user_id)

        if anonymous_cart_id is None:
            if owned is not None:
                return self.cart_summary(session, owned)
            return self.cart_summary(session, self.create_cart(session, user_id))

        if owned is not None and owned.id == anonymous_cart_id:
            return self.cart_summary(session, owned)

        anonymous = self._resolve_context_cart(session, user_id, anonymous_cart_id)

        if anonymous is None and owned is None:
            return self.cart_summary(session, self.create_cart(session, user_id))

        if owned is None:
            claimed = self.cart_repo.reassign_owner(session, anonymous.id, user_id)
            logger.info("Cart %s claimed by user %s", claimed.id, user_id)
            return self.cart_summary(session, claimed)

        if anonymous is None:
            return self.cart_summary(session, owned)

        return self._merge_into_owned(session, owned, anonymous)

    def _merge_into_owned(
        self,
        session: Session,
        owned: Cart,
        anonymous: Cart,
    ) -> CartRead:
        plan = merge(
            self.cart_repo.list_items(session, owned.id),
            self.cart_repo.list_items(session, anonymous.id),
        )
        owned_id, anonymous_id = owned.id, anonymous.id

        try:
            for line_item_id, quantity in plan.to_update:
                self.cart_repo.update_line_item_quantity(
                    session, line_item_id, quantity, commit=False
                )
            for planned in plan.to_create:
                self.cart_repo.create_line_item(
                    session,
                    cart_id=owned_id,
                    sanity_product_id=planned.sanity_product_id,
                    title=planned.title,
                    price=planned.price,
                    image=planned.image,
                    quantity=planned.quantity,
                    commit=False,
                )
            # source cart goes only after every merged line is flushed
            self.cart_repo.delete_cart(session, anonymous_id, commit=False)
            self.cart_repo.touch(session, owned, commit=False)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception(
                "Merge of cart %s into %s failed; both carts left as they were",
                anonymous_id,
                owned_id,
            )
            raise

        logger.info(
            "Merged cart %s into %s (%d updated, %d created)",
            anonymous_id,
            owned_id,
            len(plan.to_update),
            len(plan.to_create),
        )
        return self.cart_summary(session, self.cart_repo.get_by_id(session, owned_id))

    def add_catalog_product(
        self,
        session: Session,
        user_id: uuid.UUID | None,
        cart_id: uuid.UUID | None,
        product_id: str,
        catalog: Catalog,
        quantity: int = 1,
    ) -> CartRead:
        """
        Add a product by catalog id, snapshotting its title/price/image.

        If the product is already in the cart, its quantity is increased.
        """
        product = catalog.get_product(product_id)
        if product is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Product not found",
            )

        price = product.price if product.price is not None else 0.0
        if not math.isfinite(price) or price < 0:
            logger.error("Catalog product %s has invalid price %r", product.id, price)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Catalog product has an invalid price",
            )

        cart = self.get_or_create_cart(session, user_id, cart_id)
        existing = self.cart_repo.get_item(session, cart.id, product.id)
        target = quantity + (existing.quantity if existing else 0)

        payload = CartItemUpdate(
            title=(product.title or "").strip() or UNTITLED_PRODUCT,
            price=price,
            image=product.image or "",
            quantity=target,
        )
        return self.update_cart_item(session, user_id, cart.id, product.id, payload)
