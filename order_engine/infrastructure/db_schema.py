from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Enum, DateTime, MetaData, ForeignKey, CheckConstraint
)
from sqlalchemy.sql import func

from order_engine.domain.status_machine import OrderItemStatus

metadata = MetaData()


# Owned by the catalog; stock is only written through the stock ledger
products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("seller_id", String, nullable=False, index=True),
    Column("name", String, nullable=False),
    Column("price", Numeric(18, 2), nullable=False),
    Column("stock", Integer, nullable=False, default=0),
    Column("image_url", String, nullable=False, default=""),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    CheckConstraint("stock >= 0", name="ck_products_stock_non_negative")
)


# Owned by the cart service; only read and cleared at checkout
cart_items_tbl = Table(
    "cart_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("product_id", String, ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("buyer_id", String, nullable=False, index=True),
    Column("order_number", String(20), nullable=False, unique=True, index=True),
    Column("shipping_address_snapshot", String, nullable=False),
    Column("sub_total", Numeric(18, 2), nullable=False),
    Column("tax", Numeric(18, 2), nullable=False),
    Column("total", Numeric(18, 2), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("updated_at", DateTime(timezone=True), nullable=False)
)


order_items_tbl = Table(
    "order_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_id", String, ForeignKey("orders.id"), nullable=False, index=True),
    Column("product_id", String, ForeignKey("products.id"), nullable=False, index=True),
    Column("seller_id", String, nullable=False, index=True),
    Column("product_name", String, nullable=False),
    Column("product_image_url", String, nullable=False, default=""),
    Column("quantity", Integer, nullable=False),
    Column("price_at_order_time", Numeric(18, 2), nullable=False),
    Column("line_total", Numeric(18, 2), nullable=False),
    Column(
        "status",
        Enum(OrderItemStatus, values_callable=lambda e: [s.value for s in e], name="order_item_status"),
        nullable=False,
        default=OrderItemStatus.PENDING
    ),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive")
)
