"""
Shared fixtures for the order engine test suite.

Every test gets its own file-backed SQLite database. Transactions start with
BEGIN IMMEDIATE so concurrent units of work queue on the write lock the way
they would on row locks in PostgreSQL, instead of failing with SQLITE_BUSY.
"""

import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import event, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from order_engine.application.create_order import (
    CreateOrderDTO, CreateOrderUseCase, OrderLineDTO
)
from order_engine.domain.models import Role, Viewer
from order_engine.domain.status_machine import OrderItemStatus
from order_engine.infrastructure.db_schema import (
    cart_items_tbl, metadata, order_items_tbl, orders_tbl, products_tbl
)
from order_engine.infrastructure.unit_of_work import UnitOfWork


TAX_RATE = Decimal("0.10")


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        connect_args={"timeout": 30}
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        # SQLAlchemy emits BEGIN itself below
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


class Store:
    """Direct table access for arranging and asserting state"""

    def __init__(self, session_factory, uow):
        self._session_factory = session_factory
        self._uow = uow

    async def _write(self, stmt):
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def _scalar(self, stmt):
        async with self._session_factory() as session:
            return await session.scalar(stmt)

    async def product(self, seller_id="seller-x", stock=10, price="10.00", name=None) -> str:
        product_id = str(uuid.uuid4())
        await self._write(insert(products_tbl).values(
            id=product_id,
            seller_id=seller_id,
            name=name or f"Product {product_id[:8]}",
            price=Decimal(price),
            stock=stock,
            image_url=f"https://img.example.com/{product_id}.png"
        ))
        return product_id

    async def cart_item(self, user_id: str, product_id: str, quantity: int) -> str:
        item_id = str(uuid.uuid4())
        await self._write(insert(cart_items_tbl).values(
            id=item_id, user_id=user_id, product_id=product_id, quantity=quantity
        ))
        return item_id

    async def stock_of(self, product_id: str) -> int:
        return await self._scalar(select(products_tbl.c.stock).where(products_tbl.c.id == product_id))

    async def set_price(self, product_id: str, price: str) -> None:
        await self._write(
            update(products_tbl).where(products_tbl.c.id == product_id).values(price=Decimal(price))
        )

    async def cart_size(self, user_id: str) -> int:
        return await self._scalar(
            select(func.count()).select_from(cart_items_tbl).where(cart_items_tbl.c.user_id == user_id)
        )

    async def order_count(self) -> int:
        return await self._scalar(select(func.count()).select_from(orders_tbl))

    async def item_status(self, item_id: str) -> OrderItemStatus:
        value = await self._scalar(select(order_items_tbl.c.status).where(order_items_tbl.c.id == item_id))
        return OrderItemStatus(value)

    async def set_item_status(self, item_id: str, status: OrderItemStatus) -> None:
        await self._write(
            update(order_items_tbl).where(order_items_tbl.c.id == item_id).values(status=status)
        )

    async def place_order(self, buyer_id: str, lines: list[tuple[str, int]], address="1 Main St"):
        use_case = CreateOrderUseCase(self._uow, TAX_RATE)
        return await use_case(CreateOrderDTO(
            buyer_id=buyer_id,
            items=[OrderLineDTO(product_id=pid, quantity=qty) for pid, qty in lines],
            shipping_address=address
        ))


@pytest.fixture
def store(session_factory, uow):
    return Store(session_factory, uow)


def buyer(user_id="buyer-1") -> Viewer:
    return Viewer(user_id=user_id, role=Role.BUYER)


def seller(user_id="seller-x") -> Viewer:
    return Viewer(user_id=user_id, role=Role.SELLER)


def admin(user_id="admin-1") -> Viewer:
    return Viewer(user_id=user_id, role=Role.ADMIN)
