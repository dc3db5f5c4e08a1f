"""
Shared fixtures.

The app runs against an in-memory SQLite database; every test gets fresh
tables. External collaborators (catalog, checkout provider) are replaced
with in-process fakes through FastAPI dependency overrides.
"""
import json
import os
import uuid
from datetime import datetime, timedelta, timezone

# Settings are read at import time, so the environment must be ready first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_URL"] = "http://localhost:54321"
os.environ["SUPABASE_KEY"] = "test-anon-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session, SQLModel

from app.database import engine, get_session
from app.main import app
from app.models.user import User
from app.repositories.cart_repo import CartRepository
from app.services.cart_service import CartService
from app.services.catalog import Catalog, CatalogProduct, get_catalog
from app.services.checkout_gateway import (
    CheckoutEvent,
    CheckoutGateway,
    CheckoutGatewayError,
    get_checkout_gateway,
)

JWT_SECRET = "test-jwt-secret"
VALID_SIGNATURE = "valid-signature"


class FakeCatalog(Catalog):
    def __init__(self, products: list[CatalogProduct]):
        self.products = {p.id: p for p in products}
        self.lookups: list[str] = []

    def get_product(self, product_id: str) -> CatalogProduct | None:
        self.lookups.append(product_id)
        return self.products.get(product_id)


class FakeCheckoutGateway(CheckoutGateway):
    """Records sessions; accepts webhooks signed with VALID_SIGNATURE."""

    def __init__(self):
        self.sessions: list[dict] = []
        self.should_fail = False

    def create_session(self, line_items, metadata, customer_email=None) -> str:
        if self.should_fail:
            raise CheckoutGatewayError("provider unavailable")
        self.sessions.append(
            {
                "line_items": line_items,
                "metadata": metadata,
                "customer_email": customer_email,
            }
        )
        return f"https://checkout.test/pay/cs_test_{len(self.sessions)}"

    def parse_event(self, payload: bytes, signature: str) -> CheckoutEvent:
        if signature != VALID_SIGNATURE:
            raise CheckoutGatewayError("Invalid signature")
        data = json.loads(payload)
        obj = data["data"]["object"]
        return CheckoutEvent(
            type=data["type"],
            session_id=obj.get("id"),
            metadata=obj.get("metadata") or {},
        )


def make_token(user_id: uuid.UUID, email: str) -> str:
    claims = {
        "sub": str(user_id),
        "email": email,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")


@pytest.fixture(autouse=True)
def db():
    SQLModel.metadata.create_all(engine)
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session():
    with Session(engine) as session:
        yield session


@pytest.fixture
def cart_repo():
    return CartRepository()


@pytest.fixture
def cart_service(cart_repo):
    return CartService(cart_repo)


@pytest.fixture
def user(session):
    user = User(id=uuid.uuid4(), email="shopper@example.com", name="shopper")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def fake_catalog():
    return FakeCatalog(
        [
            CatalogProduct(id="prod-lamp", title="Desk Lamp", price=39.5, image="https://cdn.test/lamp.png"),
            CatalogProduct(id="prod-mug", title="Coffee Mug", price=12.0, image="https://cdn.test/mug.png"),
            CatalogProduct(id="prod-mystery", title=None, price=None, image=None),
            CatalogProduct(id="prod-broken", title="Broken", price=-1.0, image=None),
        ]
    )


@pytest.fixture
def fake_gateway():
    return FakeCheckoutGateway()


@pytest.fixture
def client(session, fake_catalog, fake_gateway):
    """
    TestClient sharing the test's Session so API writes are visible to
    assertions made through the repository.
    """
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_catalog] = lambda: fake_catalog
    app.dependency_overrides[get_checkout_gateway] = lambda: fake_gateway

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Factory: bearer headers for a (new or given) user id."""

    def _headers(user_id: uuid.UUID | None = None, email: str | None = None):
        user_id = user_id or uuid.uuid4()
        email = email or f"user-{user_id.hex[:8]}@example.com"
        return {"Authorization": f"Bearer {make_token(user_id, email)}"}

    return _headers
