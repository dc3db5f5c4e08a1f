"""Client cart store against the real API (TestClient is an httpx.Client)."""
import json
import uuid

import httpx
import pytest

from app.client.cart_api import CartApiClient, CartApiError
from app.client.cart_store import (
    CartItem,
    CartSnapshot,
    CartStore,
    FileSnapshotStorage,
    MemorySnapshotStorage,
)
from app.schemas.cart import CartItemUpdate
from conftest import make_token


def _lamp(quantity=1, item_id="prod-lamp"):
    return CartItem(id=item_id, title="Desk Lamp", price=39.5, quantity=quantity, image="lamp.png")


def _mug(quantity=1):
    return CartItem(id="prod-mug", title="Coffee Mug", price=12.0, quantity=quantity)


@pytest.fixture
def storage():
    return MemorySnapshotStorage()


@pytest.fixture
def api(client):
    return CartApiClient(client)


@pytest.fixture
def store(api, storage):
    store = CartStore(api, storage)
    store.rehydrate()
    return store


def _server_quantities(api, cart_id):
    cart = api.get_or_create_cart(cart_id)
    return {it.sanity_product_id: it.quantity for it in cart.items}


class TestLifecycle:
    def test_fresh_store_is_empty_and_not_loaded(self, store):
        assert store.items == []
        assert store.cart_id is None
        assert store.is_loaded is False
        assert store.total_items() == 0
        assert store.total_price() == 0

    def test_rehydrate_restores_persisted_fields_and_resets_flags(self, api):
        cart_id = uuid.uuid4()
        storage = MemorySnapshotStorage(CartSnapshot(items=[_lamp(2)], cart_id=cart_id))
        store = CartStore(api, storage)
        store.is_open = True
        store.is_loaded = True

        store.rehydrate()

        assert store.cart_id == cart_id
        assert [i.id for i in store.items] == ["prod-lamp"]
        assert store.is_open is False
        assert store.is_loaded is False

    def test_flags_are_not_persisted(self, store, storage):
        store.add_item(_lamp())
        store.open()

        persisted = json.loads(storage.snapshot.model_dump_json())

        assert set(persisted) == {"items", "cart_id"}

    def test_file_storage_round_trip(self, tmp_path):
        path = tmp_path / "cart" / "cart-storage.json"
        storage = FileSnapshotStorage(path)
        assert storage.load() is None

        cart_id = uuid.uuid4()
        storage.save(CartSnapshot(items=[_mug(3)], cart_id=cart_id))

        loaded = FileSnapshotStorage(path).load()
        assert loaded.cart_id == cart_id
        assert loaded.items[0].quantity == 3

    @pytest.mark.parametrize(
        "raw",
        [
            b'{"items": "nope"}',
            b"\xff\xfe\x00garbage",
            b'{"items": [{"id": "p", "title": "x", "price": Infinity, "quantity": 1}]}',
        ],
    )
    def test_file_storage_ignores_corrupt_snapshot(self, tmp_path, raw):
        path = tmp_path / "cart-storage.json"
        path.write_bytes(raw)
        assert FileSnapshotStorage(path).load() is None

    def test_rehydrate_from_corrupt_file_starts_empty(self, api, tmp_path):
        path = tmp_path / "cart-storage.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        store = CartStore(api, FileSnapshotStorage(path))

        store.rehydrate()

        assert store.items == []
        assert store.cart_id is None


class TestMutations:
    def test_add_item_creates_cart_and_persists(self, store, storage, api):
        store.add_item(_lamp(2))

        assert store.cart_id is not None
        assert store.total_items() == 2
        assert store.total_price() == pytest.approx(79.0)
        assert storage.snapshot.cart_id == store.cart_id
        assert _server_quantities(api, store.cart_id) == {"prod-lamp": 2}

    def test_adding_same_id_increments(self, store, api):
        store.add_item(_lamp(1))
        store.add_item(_lamp(2))

        assert [(i.id, i.quantity) for i in store.items] == [("prod-lamp", 3)]
        assert _server_quantities(api, store.cart_id) == {"prod-lamp": 3}

    def test_same_title_and_price_under_other_id_increments(self, store, api):
        store.add_item(_lamp(1))
        store.add_item(
            CartItem(id="lamp-draft-7", title="  desk lamp", price=39.5, quantity=1)
        )

        assert [(i.id, i.quantity) for i in store.items] == [("prod-lamp", 2)]
        assert _server_quantities(api, store.cart_id) == {"prod-lamp": 2}

    def test_remove_item(self, store, api):
        store.add_item(_lamp())
        store.add_item(_mug())

        store.remove_item("prod-lamp")

        assert [i.id for i in store.items] == ["prod-mug"]
        assert _server_quantities(api, store.cart_id) == {"prod-mug": 1}

    def test_remove_without_cart_is_noop(self, store):
        store.remove_item("prod-lamp")
        assert store.cart_id is None

    def test_update_quantity_mirrors_server(self, store, api):
        store.add_item(_lamp())

        store.update_quantity("prod-lamp", 4)

        assert store.items[0].quantity == 4
        assert _server_quantities(api, store.cart_id) == {"prod-lamp": 4}

    def test_negative_quantity_removes(self, store, api):
        store.add_item(_lamp(3))

        store.update_quantity("prod-lamp", -2)

        assert store.items == []
        assert _server_quantities(api, store.cart_id) == {}

    def test_update_unknown_item_is_ignored(self, store):
        store.add_item(_lamp())
        store.update_quantity("nope", 5)
        assert [(i.id, i.quantity) for i in store.items] == [("prod-lamp", 1)]

    def test_clear_cart_is_local_only(self, store, api):
        store.add_item(_lamp())
        store.clear_cart()
        assert store.items == []
        assert _server_quantities(api, store.cart_id) == {"prod-lamp": 1}

    def test_failed_write_leaves_state_unchanged(self, store, storage):
        store.add_item(_lamp())
        before = store.snapshot()

        def broken(*args, **kwargs):
            raise CartApiError(None, "connection reset")

        store.api.update_cart_item = broken

        with pytest.raises(CartApiError):
            store.add_item(_mug())
        with pytest.raises(CartApiError):
            store.update_quantity("prod-lamp", 9)

        assert store.snapshot() == before
        assert storage.snapshot == before

    def test_open_close(self, store):
        store.open()
        assert store.is_open
        store.close()
        assert not store.is_open


class TestSyncWithUser:
    def test_guest_sync_loads_cached_cart(self, store, api):
        store.add_item(_lamp())
        cart_id = store.cart_id
        store.rehydrate()

        store.sync_with_user()

        assert store.is_loaded
        assert store.cart_id == cart_id
        assert [i.id for i in store.items] == ["prod-lamp"]

    def test_sign_in_merges_and_replaces_local_state(self, client, store, api):
        user_id = uuid.uuid4()
        token = make_token(user_id, "merge@example.com")

        # the user already has a cart from another device
        signed_in = CartApiClient(client, token=token)
        owned = signed_in.get_or_create_cart()
        signed_in.update_cart_item(
            owned.id,
            "prod-lamp",
            CartItemUpdate(title="Desk Lamp", price=39.5, quantity=1),
        )

        store.add_item(_lamp(2))
        store.add_item(_mug())

        api.set_token(token)
        store.sync_with_user()

        assert store.cart_id == owned.id
        assert sorted((i.id, i.quantity) for i in store.items) == [
            ("prod-lamp", 3),
            ("prod-mug", 1),
        ]
        assert store.is_loaded

    def test_failed_sync_falls_back_to_cached_cart(self, store, api):
        store.add_item(_lamp())
        cart_id = store.cart_id

        def broken(cart_id):
            raise CartApiError(500, "boom")

        api.sync_cart_with_user = broken
        store.rehydrate()
        store.sync_with_user()

        assert store.is_loaded
        assert store.cart_id == cart_id
        assert [i.id for i in store.items] == ["prod-lamp"]

    def test_unreachable_server_still_marks_loaded(self, storage):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        http = httpx.Client(transport=httpx.MockTransport(refuse), base_url="http://cart.test")
        store = CartStore(CartApiClient(http), storage)
        store.rehydrate()

        with pytest.raises(CartApiError):
            store.sync_with_user()

        assert store.is_loaded
