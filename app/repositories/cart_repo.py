# app/repositories/cart_repo.py
import uuid
from datetime import datetime, timezone

from sqlmodel import Session, select

from app.models.cart import Cart, CartLineItem


class CartRepository:
    """
    Data access layer for carts and cart_line_items.

    Responsibilities:
      - Pure DB operations (CRUD + queries)
      - No FastAPI, no HTTP, no business logic

    NOTE:
      - Line item writes accept commit=False so the service can sequence
        several writes (cart merge) inside a single transaction. In that
        mode the write is flushed, not committed.
    """

    @staticmethod
    def _finish(session: Session, commit: bool) -> None:
        if commit:
            session.commit()
        else:
            session.flush()

    # ---- Carts ----

    def create_cart(
        self,
        session: Session,
        owner_user_id: uuid.UUID | None = None,
    ) -> Cart:
        cart = Cart(owner_user_id=owner_user_id)
        session.add(cart)
        session.commit()
        session.refresh(cart)
        return cart

    def get_by_id(self, session: Session, cart_id: uuid.UUID) -> Cart | None:
        return session.get(Cart, cart_id)

    def get_by_owner(self, session: Session, user_id: uuid.UUID) -> Cart | None:
        # owner_user_id is unique, so at most one row
        stmt = select(Cart).where(Cart.owner_user_id == user_id)
        return session.exec(stmt).first()

    def reassign_owner(
        self,
        session: Session,
        cart_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Cart:
        cart = session.get(Cart, cart_id)
        cart.owner_user_id = user_id
        cart.updated_at = datetime.now(timezone.utc)
        session.add(cart)
        session.commit()
        session.refresh(cart)
        return cart

    def touch(self, session: Session, cart: Cart, commit: bool = True) -> Cart:
        cart.updated_at = datetime.now(timezone.utc)
        session.add(cart)
        self._finish(session, commit)
        return cart

    def delete_cart(
        self,
        session: Session,
        cart_id: uuid.UUID,
        commit: bool = True,
    ) -> None:
        """Delete a cart together with its line items. No-op if missing."""
        for row in self.list_items(session, cart_id):
            session.delete(row)
        cart = session.get(Cart, cart_id)
        if cart is not None:
            # items must be gone before the parent row
            session.flush()
            session.delete(cart)
        self._finish(session, commit)

    # ---- Line items ----

    def list_items(self, session: Session, cart_id: uuid.UUID) -> list[CartLineItem]:
        stmt = (
            select(CartLineItem)
            .where(CartLineItem.cart_id == cart_id)
            .order_by(CartLineItem.created_at)
        )
        return session.exec(stmt).all()

    def get_item(
        self,
        session: Session,
        cart_id: uuid.UUID,
        sanity_product_id: str,
    ) -> CartLineItem | None:
        stmt = select(CartLineItem).where(
            CartLineItem.cart_id == cart_id,
            CartLineItem.sanity_product_id == sanity_product_id,
        )
        return session.exec(stmt).first()

    def create_line_item(
        self,
        session: Session,
        *,
        cart_id: uuid.UUID,
        sanity_product_id: str,
        title: str,
        price: float,
        image: str,
        quantity: int,
        commit: bool = True,
    ) -> CartLineItem:
        item = CartLineItem(
            cart_id=cart_id,
            sanity_product_id=sanity_product_id,
            title=title,
            price=price,
            image=image,
            quantity=quantity,
        )
        session.add(item)
        self._finish(session, commit)
        session.refresh(item)
        return item

    def update_line_item_quantity(
        self,
        session: Session,
        line_item_id: uuid.UUID,
        quantity: int,
        commit: bool = True,
    ) -> CartLineItem:
        item = session.get(CartLineItem, line_item_id)
        item.quantity = quantity
        session.add(item)
        self._finish(session, commit)
        session.refresh(item)
        return item

    def delete_line_item(
        self,
        session: Session,
        line_item_id: uuid.UUID,
        commit: bool = True,
    ) -> None:
        item = session.get(CartLineItem, line_item_id)
        if item is not None:
            session.delete(item)
        self._finish(session, commit)
