# app/client/cart_api.py
"""
HTTP client for the cart API, used by the client-side cart store.

Any httpx.Client works as transport, including FastAPI's TestClient.
"""
import uuid
from typing import Any
from urllib.parse import quote

import httpx

from app.schemas.cart import CartItemUpdate, CartRead


class CartApiError(Exception):
    """
    Raised when a cart API call fails.

    status_code is None for transport failures (no response at all).
    """

    def __init__(self, status_code: int | None, detail: Any):
        super().__init__(f"Cart API error {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class CartApiClient:
    def __init__(
        self,
        http: httpx.Client,
        token: str | None = None,
        prefix: str = "/api/v1",
    ):
        self.http = http
        self.token = token
        self.prefix = prefix.rstrip("/")

    def set_token(self, token: str | None) -> None:
        """Switch identity, e.g. after sign-in or sign-out."""
        self.token = token

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _send(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self.http.request(
                method,
                f"{self.prefix}{path}",
                headers=self._headers(),
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise CartApiError(None, str(exc)) from exc

        if response.is_error:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            raise CartApiError(response.status_code, detail)

        return response.json()

    def get_or_create_cart(self, cart_id: uuid.UUID | None = None) -> CartRead:
        params = {"cart_id": str(cart_id)} if cart_id else None
        return CartRead.model_validate(self._send("GET", "/cart", params=params))

    def update_cart_item(
        self,
        cart_id: uuid.UUID,
        sanity_product_id: str,
        payload: CartItemUpdate,
    ) -> CartRead:
        data = self._send(
            "PUT",
            f"/cart/{cart_id}/items/{quote(sanity_product_id, safe='')}",
            json=payload.model_dump(exclude_none=True),
        )
        return CartRead.model_validate(data)

    def sync_cart_with_user(self, cart_id: uuid.UUID | None) -> CartRead | None:
        data = self._send(
            "POST",
            "/cart/sync",
            json={"cart_id": str(cart_id) if cart_id else None},
        )
        if data is None:
            return None
        return CartRead.model_validate(data)
