# app/client/cart_store.py
"""
Client-side cart store.

A locally persisted mirror of the active cart. Only `items` and
`cart_id` are persisted; `is_open` and `is_loaded` live for one session
and are reset by `rehydrate()`.

Writes go through the cart API first and are applied locally only once
the server confirms them, so a failed call leaves the store as it was.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ConfigDict, ValidationError
from sqlmodel import SQLModel, Field

from app.client.cart_api import CartApiClient, CartApiError
from app.schemas.cart import CartItemUpdate, CartRead, SetQuantity, quantity_change

logger = logging.getLogger(__name__)


class CartItem(SQLModel):
    """A cart line as the UI sees it. id is the catalog product id."""

    model_config = ConfigDict(allow_inf_nan=False)

    id: str
    title: str
    price: float = Field(ge=0)
    quantity: int = Field(gt=0)
    image: str = ""


class CartSnapshot(SQLModel):
    """Persisted subset of the store."""

    items: list[CartItem] = []
    cart_id: uuid.UUID | None = None


# ---- Snapshot storage ----


class SnapshotStorage(ABC):
    @abstractmethod
    def load(self) -> CartSnapshot | None: ...

    @abstractmethod
    def save(self, snapshot: CartSnapshot) -> None: ...


class MemorySnapshotStorage(SnapshotStorage):
    def __init__(self, snapshot: CartSnapshot | None = None):
        self.snapshot = snapshot

    def load(self) -> CartSnapshot | None:
        return self.snapshot

    def save(self, snapshot: CartSnapshot) -> None:
        self.snapshot = snapshot


class FileSnapshotStorage(SnapshotStorage):
    """JSON file storage: {"items": [...], "cart_id": "..." | null}."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> CartSnapshot | None:
        if not self.path.exists():
            return None
        try:
            return CartSnapshot.model_validate_json(self.path.read_bytes())
        except ValidationError:
            logger.warning("Discarding unreadable cart snapshot at %s", self.path)
            return None

    def save(self, snapshot: CartSnapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(snapshot.model_dump_json())


# ---- Store ----


def _items_from_cart(cart: CartRead) -> list[CartItem]:
    return [
        CartItem(
            id=it.sanity_product_id,
            title=it.title,
            price=it.price,
            quantity=it.quantity,
            image=it.image,
        )
        for it in cart.items
    ]


def _same_product(a: CartItem, b: CartItem) -> bool:
    # Heuristic: the same product may reach the UI under different ids.
    # Two distinct products sharing a title and price will collide here.
    return a.title.strip().lower() == b.title.strip().lower() and a.price == b.price


class CartStore:
    def __init__(self, api: CartApiClient, storage: SnapshotStorage):
        self.api = api
        self.storage = storage
        self.items: list[CartItem] = []
        self.cart_id: uuid.UUID | None = None
        self.is_open = False
        self.is_loaded = False

    # ---- lifecycle ----

    def rehydrate(self) -> None:
        """Reload the persisted snapshot and reset transient flags."""
        snapshot = self.storage.load() or CartSnapshot()
        self.items = list(snapshot.items)
        self.cart_id = snapshot.cart_id
        self.is_open = False
        self.is_loaded = False

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(items=list(self.items), cart_id=self.cart_id)

    def _persist(self) -> None:
        self.storage.save(self.snapshot())

    def _mirror(self, cart: CartRead) -> None:
        self.cart_id = cart.id
        self.items = _items_from_cart(cart)
        self._persist()

    def _find(self, item_id: str) -> CartItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    # ---- mutations ----

    def add_item(self, item: CartItem) -> None:
        if self.cart_id is None:
            cart = self.api.get_or_create_cart()
            self.cart_id = cart.id
            self._persist()

        existing = self._find(item.id)
        if existing is None:
            existing = next((i for i in self.items if _same_product(i, item)), None)
        if existing is not None:
            self.update_quantity(existing.id, existing.quantity + item.quantity)
            return

        cart = self.api.update_cart_item(
            self.cart_id,
            item.id,
            CartItemUpdate(
                title=item.title,
                price=item.price,
                image=item.image,
                quantity=item.quantity,
            ),
        )

        self.cart_id = cart.id
        current = self._find(item.id)
        if current is not None:
            current.quantity += item.quantity
        else:
            self.items.append(item.model_copy())
        self._persist()

    def remove_item(self, item_id: str) -> None:
        if self.cart_id is None:
            return

        cart = self.api.update_cart_item(
            self.cart_id, item_id, CartItemUpdate(quantity=0)
        )

        self.cart_id = cart.id
        self.items = [i for i in self.items if i.id != item_id]
        self._persist()

    def update_quantity(self, item_id: str, quantity: int) -> None:
        """
        Set an item's quantity; anything <= 0 removes the item.
        """
        if self.cart_id is None:
            logger.error("No cart ID available")
            return

        target = self._find(item_id)
        if target is None:
            logger.error("Item %s not found in cart", item_id)
            return

        if quantity < 0:
            logger.warning("Clamping quantity %d for %s to a removal", quantity, item_id)

        change = quantity_change(quantity)
        cart = self.api.update_cart_item(
            self.cart_id,
            item_id,
            CartItemUpdate(
                title=target.title,
                price=target.price,
                image=target.image,
                quantity=change.quantity if isinstance(change, SetQuantity) else 0,
            ),
        )
        self._mirror(cart)

    def sync_with_user(self) -> None:
        """
        Reconcile with the server after the persisted state is reloaded.

        Always ends loaded; when sync fails the store falls back to the
        cart named by the cached id (or a fresh one).
        """
        current = self.cart_id
        try:
            try:
                cart = self.api.sync_cart_with_user(current)
                if cart is None:
                    # guest: nothing to merge, just load the cart
                    cart = self.api.get_or_create_cart(current)
            except CartApiError:
                logger.exception("Error syncing cart with user")
                cart = self.api.get_or_create_cart(current)
            self._mirror(cart)
        finally:
            self.is_loaded = True

    def clear_cart(self) -> None:
        self.items = []
        self._persist()

    # ---- UI flags ----

    def open(self) -> None:
        self.is_open = True

    def close(self) -> None:
        self.is_open = False

    def set_loaded(self, loaded: bool) -> None:
        self.is_loaded = loaded

    # ---- derived ----

    def total_items(self) -> int:
        return sum(i.quantity for i in self.items)

    def total_price(self) -> float:
        return sum(i.price * i.quantity for i in self.items)
