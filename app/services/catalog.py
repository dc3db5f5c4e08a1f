# app/services/catalog.py
"""
Catalog lookups used to snapshot a product into a cart line at add-time.

The cart never consults the catalog again for an existing line.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass

from supabase import Client

from app.core.config import get_settings
from app.core.supabase_client import supabase_public


@dataclass(frozen=True)
class CatalogProduct:
    id: str
    title: str | None
    price: float | None
    image: str | None


class Catalog(ABC):
    """Read-only product catalog."""

    @abstractmethod
    def get_product(self, product_id: str) -> CatalogProduct | None:
        """Return the product, or None if the catalog does not know it."""
        ...


class SupabaseCatalog(Catalog):
    """
    Catalog backed by a Supabase table with columns
    id, title, price, image.
    """

    def __init__(self, client: Client, table: str):
        self.client = client
        self.table = table

    def get_product(self, product_id: str) -> CatalogProduct | None:
        response = (
            self.client.table(self.table)
            .select("id, title, price, image")
            .eq("id", product_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None

        row = response.data[0]
        price = row.get("price")
        return CatalogProduct(
            id=str(row["id"]),
            title=row.get("title"),
            price=float(price) if price is not None else None,
            image=row.get("image"),
        )


def get_catalog() -> Catalog:
    """
    FastAPI dependency returning the configured catalog.
    """
    return SupabaseCatalog(supabase_public(), get_settings().CATALOG_TABLE)
