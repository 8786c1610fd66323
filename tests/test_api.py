from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from order_engine.domain.status_machine import OrderItemStatus
from order_engine.main import app
from order_engine.presentation.api import get_unit_of_work


BUYER = {"X-User-Id": "buyer-1", "X-User-Role": "buyer"}
SELLER = {"X-User-Id": "seller-x", "X-User-Role": "Seller"}


@pytest_asyncio.fixture
async def client(uow):
    app.dependency_overrides[get_unit_of_work] = lambda: uow
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_create_order(client, store):
    a = await store.product(stock=5, price="10.00")

    response = await client.post("/api/orders", headers=BUYER, json={
        "items": [{"product_id": a, "quantity": 2}],
        "shipping_address": "1 Main St"
    })

    assert response.status_code == 201
    body = response.json()
    assert body["buyer_id"] == "buyer-1"
    assert Decimal(body["total"]) == Decimal("22.00")
    assert body["order_items"][0]["status"] == "Pending"
    assert await store.stock_of(a) == 3


@pytest.mark.asyncio
async def test_missing_identity_is_unauthorized(client):
    response = await client.get("/api/orders")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_role_is_unauthorized(client):
    response = await client.get("/api/orders", headers={"X-User-Id": "u", "X-User-Role": "root"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_insufficient_stock_is_bad_request(client, store):
    a = await store.product(stock=1)

    response = await client.post("/api/orders", headers=BUYER, json={
        "items": [{"product_id": a, "quantity": 2}],
        "shipping_address": "1 Main St"
    })

    assert response.status_code == 400
    assert "Insufficient stock" in response.json()["detail"]
    assert await store.stock_of(a) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"items": [], "shipping_address": "1 Main St"},
    {"items": [{"product_id": "p", "quantity": 0}], "shipping_address": "1 Main St"},
    {"items": [{"product_id": "p", "quantity": 101}], "shipping_address": "1 Main St"},
    {"items": [{"product_id": "p", "quantity": 1}], "shipping_address": ""},
])
async def test_invalid_payload(client, payload):
    response = await client.post("/api/orders", headers=BUYER, json=payload)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_empty_cart_is_bad_request(client):
    response = await client.post("/api/orders/from-cart", headers=BUYER, json={"shipping_address": "1 Main St"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_checkout_from_cart(client, store):
    a = await store.product(stock=5, price="10.00")
    await store.cart_item("buyer-1", a, 1)

    response = await client.post("/api/orders/from-cart", headers=BUYER, json={"shipping_address": "1 Main St"})

    assert response.status_code == 201
    assert await store.cart_size("buyer-1") == 0


@pytest.mark.asyncio
async def test_buyer_cannot_use_seller_endpoints(client, store):
    a = await store.product(stock=5)
    order = await store.place_order("buyer-1", [(a, 1)])

    response = await client.put(
        f"/api/orders/items/{order.items[0].id}/status", headers=BUYER, json={"status": "Processing"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_seller_updates_status(client, store):
    a = await store.product(stock=5)
    order = await store.place_order("buyer-1", [(a, 1)])
    item_id = order.items[0].id

    response = await client.put(f"/api/orders/items/{item_id}/status", headers=SELLER, json={"status": "Processing"})
    assert response.status_code == 200
    assert response.json()["status"] == "Processing"

    response = await client.put(f"/api/orders/items/{item_id}/status", headers=SELLER, json={"status": "Pending"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_bulk_cancel_with_delivered_item(client, store):
    a = await store.product(stock=5)
    order = await store.place_order("buyer-1", [(a, 1)])
    other = await store.place_order("buyer-1", [(a, 1)])
    await store.set_item_status(other.items[0].id, OrderItemStatus.DELIVERED)

    response = await client.post("/api/orders/items/bulk-cancel", headers=SELLER, json={
        "order_item_ids": [order.items[0].id, other.items[0].id],
        "reason": "warehouse fire"
    })

    assert response.status_code == 400
    assert other.items[0].id in response.json()["detail"]
    assert await store.item_status(order.items[0].id) == OrderItemStatus.PENDING
    assert await store.stock_of(a) == 3


@pytest.mark.asyncio
async def test_cancel_item_without_body(client, store):
    a = await store.product(stock=5)
    order = await store.place_order("buyer-1", [(a, 2)])

    response = await client.post(f"/api/orders/items/{order.items[0].id}/cancel", headers=SELLER)

    assert response.status_code == 204
    assert await store.stock_of(a) == 5


@pytest.mark.asyncio
async def test_other_sellers_item_is_forbidden(client, store):
    a = await store.product(seller_id="seller-y", stock=5)
    order = await store.place_order("buyer-1", [(a, 1)])

    response = await client.get(f"/api/orders/items/{order.items[0].id}", headers=SELLER)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_order_of_another_seller_is_not_found(client, store):
    a = await store.product(seller_id="seller-y", stock=5)
    order = await store.place_order("buyer-1", [(a, 1)])

    response = await client.get(f"/api/orders/{order.id}", headers=SELLER)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_and_can_cancel(client, store):
    a = await store.product(stock=5)
    order = await store.place_order("buyer-1", [(a, 1)])

    response = await client.get("/api/orders", headers=BUYER, params={"status": "Pending", "page_size": 5})
    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 1
    assert body["items"][0]["id"] == order.id

    response = await client.get(f"/api/orders/{order.id}/can-cancel", headers=BUYER)
    assert response.json() == {"order_id": order.id, "can_cancel": True}


@pytest.mark.asyncio
async def test_next_statuses(client, store):
    a = await store.product(stock=5)
    order = await store.place_order("buyer-1", [(a, 1)])
    item_id = order.items[0].id

    response = await client.get(f"/api/orders/items/{item_id}/next-statuses", headers=SELLER)

    assert response.json() == {"order_item_id": item_id, "valid_next_statuses": ["Processing", "Cancelled"]}


@pytest.mark.asyncio
async def test_buyer_cancels_order(client, store):
    a = await store.product(stock=5)
    order = await store.place_order("buyer-1", [(a, 2)])

    response = await client.post(f"/api/orders/{order.id}/cancel", headers=BUYER, json={"reason": "too slow"})

    assert response.status_code == 204
    assert await store.stock_of(a) == 5


@pytest.mark.asyncio
async def test_list_with_naive_and_aware_dates(client, store):
    a = await store.product(stock=5)
    await store.place_order("buyer-1", [(a, 1)])

    response = await client.get("/api/orders", headers=BUYER, params={
        "from_date": "2020-01-01T00:00:00", "to_date": "2099-01-01T00:00:00Z"
    })
    assert response.status_code == 200
    assert response.json()["total_count"] == 1

    response = await client.get("/api/orders", headers=BUYER, params={
        "from_date": "2099-01-01T00:00:00", "to_date": "2020-01-01T00:00:00Z"
    })
    assert response.status_code == 400
