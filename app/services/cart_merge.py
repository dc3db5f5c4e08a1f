# app/services/cart_merge.py
"""
Cart merge engine.

Pure reconciliation used when an anonymous cart is folded into a user's
cart on sign-in. No I/O happens here; the caller applies the plan and
deletes the source cart afterwards.

Rules:
  - same product in both carts -> target quantity + incoming quantity
  - product only in the incoming cart -> new line in the target cart,
    keeping the incoming title/price/image/quantity snapshot
  - target lines are never deleted
  - the order of incoming items does not change the plan's effect
"""
import uuid
from dataclasses import dataclass, field
from typing import Iterable

from app.models.cart import CartLineItem


@dataclass(frozen=True)
class PlannedLineItem:
    sanity_product_id: str
    title: str
    price: float
    image: str
    quantity: int


@dataclass
class MergePlan:
    to_update: list[tuple[uuid.UUID, int]] = field(default_factory=list)
    to_create: list[PlannedLineItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_update and not self.to_create


def merge(
    target_items: Iterable[CartLineItem],
    incoming_items: Iterable[CartLineItem],
) -> MergePlan:
    """
    Build the write plan that folds incoming_items into target_items.

    Incoming lines sharing a product id are summed before planning, so a
    malformed source cart still yields one write per product.
    """
    target_by_product = {it.sanity_product_id: it for it in target_items}

    added: dict[str, int] = {}
    snapshots: dict[str, CartLineItem] = {}
    for it in incoming_items:
        added[it.sanity_product_id] = added.get(it.sanity_product_id, 0) + it.quantity
        snapshots.setdefault(it.sanity_product_id, it)

    plan = MergePlan()
    # sorted so the plan is identical for any incoming order
    for product_id in sorted(added):
        quantity = added[product_id]
        existing = target_by_product.get(product_id)
        if existing is not None:
            plan.to_update.append((existing.id, existing.quantity + quantity))
            continue

        src = snapshots[product_id]
        plan.to_create.append(
            PlannedLineItem(
                sanity_product_id=product_id,
                title=src.title,
                price=src.price,
                image=src.image,
                quantity=quantity,
            )
        )
    return plan
