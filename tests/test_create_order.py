import asyncio
from decimal import Decimal

import pytest

from conftest import TAX_RATE, buyer
from order_engine.application.create_order import (
    CreateOrderDTO,
    CreateOrderFromCartDTO,
    CreateOrderFromCartUseCase,
    CreateOrderUseCase,
    OrderLineDTO,
    build_order,
    merge_lines,
    place_order,
)
from order_engine.application.get_order import GetOrderUseCase
from order_engine.domain.exceptions import (
    EmptyCartError, InsufficientStockError, ProductNotFoundError
)
from order_engine.domain.models import Product
from order_engine.domain.status_machine import OrderItemStatus


@pytest.mark.asyncio
async def test_checkout_from_cart(uow, store):
    a = await store.product(stock=5, price="10.00")
    b = await store.product(stock=1, price="5.50")
    await store.cart_item("buyer-1", a, 2)
    await store.cart_item("buyer-1", b, 1)

    order = await CreateOrderFromCartUseCase(uow, TAX_RATE)(
        CreateOrderFromCartDTO(buyer_id="buyer-1", shipping_address="1 Main St")
    )

    assert await store.stock_of(a) == 3
    assert await store.stock_of(b) == 0
    assert await store.cart_size("buyer-1") == 0

    assert order.sub_total == Decimal("25.50")
    assert order.tax == Decimal("2.55")
    assert order.total == Decimal("28.05")
    assert order.order_number.startswith("ORD")
    assert len(order.order_number) == 16
    assert order.shipping_address_snapshot == "1 Main St"
    assert {item.status for item in order.items} == {OrderItemStatus.PENDING}
    assert {item.product_id: item.quantity for item in order.items} == {a: 2, b: 1}


@pytest.mark.asyncio
async def test_checkout_is_all_or_nothing(uow, store):
    a = await store.product(stock=5)
    b = await store.product(stock=1)
    await store.cart_item("buyer-1", a, 2)
    await store.cart_item("buyer-1", b, 2)

    with pytest.raises(InsufficientStockError) as exc_info:
        await CreateOrderFromCartUseCase(uow, TAX_RATE)(
            CreateOrderFromCartDTO(buyer_id="buyer-1", shipping_address="1 Main St")
        )

    assert exc_info.value.product_id == b
    assert await store.stock_of(a) == 5
    assert await store.stock_of(b) == 1
    assert await store.cart_size("buyer-1") == 2
    assert await store.order_count() == 0


@pytest.mark.asyncio
async def test_unknown_product_rejects_order(uow, store):
    a = await store.product(stock=5)

    with pytest.raises(ProductNotFoundError):
        await store.place_order("buyer-1", [(a, 1), ("missing", 1)])

    assert await store.stock_of(a) == 5
    assert await store.order_count() == 0


@pytest.mark.asyncio
async def test_empty_cart(uow, store):
    with pytest.raises(EmptyCartError):
        await CreateOrderFromCartUseCase(uow, TAX_RATE)(
            CreateOrderFromCartDTO(buyer_id="buyer-1", shipping_address="1 Main St")
        )
    assert await store.order_count() == 0


@pytest.mark.asyncio
async def test_only_consumed_cart_rows_are_deleted(uow, store):
    a = await store.product(stock=5)
    await store.cart_item("buyer-1", a, 1)
    await store.cart_item("buyer-2", a, 1)

    await CreateOrderFromCartUseCase(uow, TAX_RATE)(
        CreateOrderFromCartDTO(buyer_id="buyer-1", shipping_address="1 Main St")
    )

    assert await store.cart_size("buyer-1") == 0
    assert await store.cart_size("buyer-2") == 1


@pytest.mark.asyncio
async def test_last_unit_goes_to_one_buyer(uow, store):
    a = await store.product(stock=1)
    use_case = CreateOrderUseCase(uow, TAX_RATE)

    def checkout(buyer_id):
        return use_case(CreateOrderDTO(
            buyer_id=buyer_id,
            items=[OrderLineDTO(product_id=a, quantity=1)],
            shipping_address="1 Main St"
        ))

    results = await asyncio.gather(checkout("buyer-1"), checkout("buyer-2"), return_exceptions=True)

    assert sum(isinstance(r, InsufficientStockError) for r in results) == 1
    assert await store.stock_of(a) == 0
    assert await store.order_count() == 1


@pytest.mark.asyncio
async def test_repeated_product_lines_are_merged(uow, store):
    a = await store.product(stock=3)

    order = await store.place_order("buyer-1", [(a, 1), (a, 2)])

    assert len(order.items) == 1
    assert order.items[0].quantity == 3
    assert await store.stock_of(a) == 0


@pytest.mark.asyncio
async def test_merged_lines_are_checked_against_stock_together(uow, store):
    a = await store.product(stock=2)

    with pytest.raises(InsufficientStockError):
        await store.place_order("buyer-1", [(a, 2), (a, 1)])

    assert await store.stock_of(a) == 2


@pytest.mark.asyncio
async def test_price_is_snapshotted(uow, store):
    a = await store.product(stock=5, price="10.00", name="Lamp")
    order = await store.place_order("buyer-1", [(a, 2)])

    await store.set_price(a, "99.00")
    stored = await GetOrderUseCase(uow)(order.id, buyer())

    item = stored.items[0]
    assert item.price_at_order_time == Decimal("10.00")
    assert item.line_total == Decimal("20.00")
    assert item.product_name == "Lamp"
    assert stored.total == Decimal("22.00")


def test_merge_lines_keeps_first_seen_order():
    merged = merge_lines([
        OrderLineDTO(product_id="b", quantity=1),
        OrderLineDTO(product_id="a", quantity=2),
        OrderLineDTO(product_id="b", quantity=4),
    ])
    assert [(line.product_id, line.quantity) for line in merged] == [("b", 5), ("a", 2)]


def test_tax_rounds_half_up():
    product = Product(id="p", seller_id="s", name="Pen", price=Decimal("0.05"), stock=10)
    order = build_order(
        "ORD2610181200123", "buyer-1", "addr",
        [OrderLineDTO(product_id="p", quantity=1)], {"p": product}, Decimal("0.10")
    )
    # 0.005 rounds up
    assert order.tax == Decimal("0.01")
    assert order.total == Decimal("0.06")


class RecordingProducts:
    def __init__(self, products):
        self._products = {product.id: product for product in products}
        self.decremented = []

    async def get_many(self, product_ids):
        return {pid: self._products[pid] for pid in product_ids if pid in self._products}

    async def get_by_id(self, product_id):
        return self._products.get(product_id)

    async def decrement_stock(self, product_id, quantity):
        self.decremented.append(product_id)
        return True


class RecordingOrders:
    def __init__(self):
        self.created = []

    async def exists_by_order_number(self, order_number):
        return False

    async def create(self, order):
        self.created.append(order)


class RecordingUnitOfWork:
    def __init__(self, products):
        self.products = RecordingProducts(products)
        self.orders = RecordingOrders()


@pytest.mark.asyncio
async def test_stock_rows_are_locked_in_product_id_order():
    products = [
        Product(id=pid, seller_id="s", name=pid, price=Decimal("1.00"), stock=5)
        for pid in ("c", "a", "b")
    ]
    uow = RecordingUnitOfWork(products)
    lines = [OrderLineDTO(product_id=pid, quantity=1) for pid in ("c", "a", "b")]

    order = await place_order(uow, "buyer-1", lines, "1 Main St", TAX_RATE, "ORD")

    assert uow.products.decremented == ["a", "b", "c"]
    # Order lines keep the buyer's order
    assert [item.product_id for item in order.items] == ["c", "a", "b"]
