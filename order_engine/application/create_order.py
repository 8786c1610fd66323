import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from pydantic import BaseModel

from order_engine.application.interfaces import UnitOfWork
from order_engine.application.order_numbers import OrderNumberGenerator
from order_engine.application.stock_ledger import StockLedger
from order_engine.domain.exceptions import EmptyCartError, ProductNotFoundError
from order_engine.domain.models import (
    Order, OrderItem, Product, StockAdjustment, StockDirection
)
from order_engine.domain.status_machine import OrderItemStatus


logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class OrderLineDTO(BaseModel):
    product_id: str
    quantity: int


class CreateOrderDTO(BaseModel):
    buyer_id: str
    items: list[OrderLineDTO]
    shipping_address: str


class CreateOrderFromCartDTO(BaseModel):
    buyer_id: str
    shipping_address: str


def merge_lines(lines: list[OrderLineDTO]) -> list[OrderLineDTO]:
    """Collapse repeated products into one line, keeping first-seen order"""
    merged: dict[str, int] = {}
    for line in lines:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return [OrderLineDTO(product_id=pid, quantity=qty) for pid, qty in merged.items()]


def build_order(
    order_number: str,
    buyer_id: str,
    shipping_address: str,
    lines: list[OrderLineDTO],
    products: dict[str, Product],
    tax_rate: Decimal
) -> Order:
    now = datetime.now(timezone.utc)
    order_id = str(uuid.uuid4())
    items = []
    for line in lines:
        product = products[line.product_id]
        items.append(OrderItem(
            id=str(uuid.uuid4()),
            order_id=order_id,
            product_id=product.id,
            seller_id=product.seller_id,
            product_name=product.name,
            product_image_url=product.image_url,
            quantity=line.quantity,
            price_at_order_time=product.price,
            line_total=(product.price * line.quantity).quantize(CENTS, rounding=ROUND_HALF_UP),
            status=OrderItemStatus.PENDING,
            created_at=now,
            updated_at=now
        ))

    sub_total = sum((item.line_total for item in items), Decimal("0"))
    tax = (sub_total * tax_rate).quantize(CENTS, rounding=ROUND_HALF_UP)
    return Order(
        id=order_id,
        buyer_id=buyer_id,
        order_number=order_number,
        shipping_address_snapshot=shipping_address,
        sub_total=sub_total,
        tax=tax,
        total=sub_total + tax,
        items=items,
        created_at=now,
        updated_at=now
    )


async def place_order(
    uow: UnitOfWork,
    buyer_id: str,
    lines: list[OrderLineDTO],
    shipping_address: str,
    tax_rate: Decimal,
    order_number_prefix: str
) -> Order:
    """Reserve stock for every line and persist the order in the caller's transaction.

    The first failing line raises; the unit of work then rolls back every
    decrement already applied.
    """
    products = await uow.products.get_many([line.product_id for line in lines])
    for line in lines:
        if line.product_id not in products:
            raise ProductNotFoundError(line.product_id)

    ledger = StockLedger(uow.products)
    # Lock product rows in id order so concurrent checkouts cannot deadlock
    for line in sorted(lines, key=lambda l: l.product_id):
        await ledger.apply(StockAdjustment(
            product_id=line.product_id,
            quantity=line.quantity,
            direction=StockDirection.DECREMENT
        ))

    order_number = await OrderNumberGenerator(uow.orders, prefix=order_number_prefix).generate()
    order = build_order(order_number, buyer_id, shipping_address, lines, products, tax_rate)
    await uow.orders.create(order)
    return order


class CreateOrderUseCase:
    def __init__(self, unit_of_work, tax_rate: Decimal, order_number_prefix: str = "ORD"):
        self._uow = unit_of_work
        self._tax_rate = tax_rate
        self._prefix = order_number_prefix

    async def __call__(self, order_data: CreateOrderDTO) -> Order:
        logger.info(f"Creating order for buyer {order_data.buyer_id}, {len(order_data.items)} lines")
        lines = merge_lines(order_data.items)

        async with self._uow() as uow:
            order = await place_order(
                uow, order_data.buyer_id, lines, order_data.shipping_address, self._tax_rate, self._prefix
            )
            await uow.commit()

        logger.info(f"Order created: {order.order_number} ({order.id})")
        return order


class CreateOrderFromCartUseCase:
    def __init__(self, unit_of_work, tax_rate: Decimal, order_number_prefix: str = "ORD"):
        self._uow = unit_of_work
        self._tax_rate = tax_rate
        self._prefix = order_number_prefix

    async def __call__(self, order_data: CreateOrderFromCartDTO) -> Order:
        logger.info(f"Creating order from cart for buyer {order_data.buyer_id}")

        async with self._uow() as uow:
            cart_items = await uow.carts.get_items(order_data.buyer_id)
            if not cart_items:
                raise EmptyCartError(order_data.buyer_id)

            lines = merge_lines([
                OrderLineDTO(product_id=item.product_id, quantity=item.quantity)
                for item in cart_items
            ])
            order = await place_order(
                uow, order_data.buyer_id, lines, order_data.shipping_address, self._tax_rate, self._prefix
            )
            # Only the rows that were read; anything added meanwhile stays in the cart
            await uow.carts.delete_items(order_data.buyer_id, [item.id for item in cart_items])
            await uow.commit()

        logger.info(f"Order created from cart: {order.order_number} ({order.id})")
        return order
