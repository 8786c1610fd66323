from collections import defaultdict
from typing import Optional, List, Iterable
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from order_engine.domain.models import (
    CartItem, Order, OrderFilter, OrderItem, OrderStats, Product, Role, Viewer
)
from order_engine.domain.status_machine import OrderItemStatus
from order_engine.infrastructure.db_schema import (
    products_tbl, cart_items_tbl, orders_tbl, order_items_tbl
)
from order_engine.application.interfaces import (
    ProductRepository, CartRepository, OrderRepository
)


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_many(self, product_ids: Iterable[str]) -> dict[str, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id.in_(ids))
        )
        return {row.id: self._to_domain(row) for row in result.fetchall()}

    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        # Check and write in one statement: no read-modify-write window
        stmt = (
            update(products_tbl)
            .where(
                products_tbl.c.id == product_id,
                products_tbl.c.stock >= quantity
            )
            .values(stock=products_tbl.c.stock - quantity)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def increment_stock(self, product_id: str, quantity: int) -> bool:
        stmt = (
            update(products_tbl)
            .where(products_tbl.c.id == product_id)
            .values(stock=products_tbl.c.stock + quantity)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> Product:
        return Product(
            id=row.id,
            seller_id=row.seller_id,
            name=row.name,
            price=row.price,
            stock=row.stock,
            image_url=row.image_url or ""
        )


class SQLAlchemyCartRepository(CartRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_items(self, user_id: str) -> List[CartItem]:
        result = await self._session.execute(
            select(cart_items_tbl)
            .where(cart_items_tbl.c.user_id == user_id)
            .order_by(cart_items_tbl.c.created_at.asc(), cart_items_tbl.c.id.asc())
        )
        return [
            CartItem(
                id=row.id,
                user_id=row.user_id,
                product_id=row.product_id,
                quantity=row.quantity
            )
            for row in result.fetchall()
        ]

    async def delete_items(self, user_id: str, item_ids: List[str]) -> int:
        if not item_ids:
            return 0
        stmt = delete(cart_items_tbl).where(
            cart_items_tbl.c.user_id == user_id,
            cart_items_tbl.c.id.in_(item_ids)
        )
        result = await self._session.execute(stmt)
        return result.rowcount


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, order: Order) -> None:
        await self._session.execute(
            insert(orders_tbl).values(
                id=order.id,
                buyer_id=order.buyer_id,
                order_number=order.order_number,
                shipping_address_snapshot=order.shipping_address_snapshot,
                sub_total=order.sub_total,
                tax=order.tax,
                total=order.total,
                created_at=order.created_at,
                updated_at=order.updated_at
            )
        )
        await self._session.execute(
            insert(order_items_tbl),
            [
                {
                    "id": item.id,
                    "order_id": order.id,
                    "product_id": item.product_id,
                    "seller_id": item.seller_id,
                    "product_name": item.product_name,
                    "product_image_url": item.product_image_url,
                    "quantity": item.quantity,
                    "price_at_order_time": item.price_at_order_time,
                    "line_total": item.line_total,
                    "status": item.status,
                    "created_at": item.created_at,
                    "updated_at": item.updated_at
                }
                for item in order.items
            ]
        )

    async def get_by_id(self, order_id: str, viewer: Optional[Viewer] = None) -> Optional[Order]:
        conditions = [orders_tbl.c.id == order_id]
        if viewer is not None:
            conditions.extend(self._visibility(viewer))
        result = await self._session.execute(select(orders_tbl).where(*conditions))
        row = result.fetchone()
        if not row:
            return None
        orders = await self._hydrate([row], self._seller_scope(viewer))
        return orders[0]

    async def exists_by_order_number(self, order_number: str) -> bool:
        result = await self._session.execute(
            select(orders_tbl.c.id).where(orders_tbl.c.order_number == order_number)
        )
        return result.first() is not None

    async def get_item(self, item_id: str) -> Optional[OrderItem]:
        result = await self._session.execute(
            select(order_items_tbl).where(order_items_tbl.c.id == item_id)
        )
        row = result.fetchone()
        return self._item_to_domain(row) if row else None

    async def get_items(self, item_ids: List[str]) -> List[OrderItem]:
        if not item_ids:
            return []
        result = await self._session.execute(
            select(order_items_tbl).where(order_items_tbl.c.id.in_(item_ids))
        )
        by_id = {row.id: self._item_to_domain(row) for row in result.fetchall()}
        # Keep the caller's order
        return [by_id[item_id] for item_id in item_ids if item_id in by_id]

    async def get_items_by_order(self, order_id: str, seller_id: Optional[str] = None) -> List[OrderItem]:
        stmt = select(order_items_tbl).where(order_items_tbl.c.order_id == order_id)
        if seller_id is not None:
            stmt = stmt.where(order_items_tbl.c.seller_id == seller_id)
        result = await self._session.execute(
            stmt.order_by(order_items_tbl.c.created_at.asc(), order_items_tbl.c.id.asc())
        )
        return [self._item_to_domain(row) for row in result.fetchall()]

    async def update_items_status(
        self,
        item_ids: List[str],
        status: OrderItemStatus,
        from_statuses: Iterable[OrderItemStatus]
    ) -> int:
        # Compare-and-set: rows that left a legal source state meanwhile are skipped
        stmt = (
            update(order_items_tbl)
            .where(
                order_items_tbl.c.id.in_(item_ids),
                order_items_tbl.c.status.in_(list(from_statuses))
            )
            .values(
                status=status,
                updated_at=datetime.now(timezone.utc)
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def get_paged(self, viewer: Viewer, order_filter: OrderFilter) -> tuple[List[Order], int]:
        item_conditions = []
        if order_filter.status is not None:
            item_conditions.append(order_items_tbl.c.status == order_filter.status)
        if order_filter.search_term and order_filter.search_term.strip():
            term = order_filter.search_term.strip().lower()
            item_conditions.append(
                func.lower(order_items_tbl.c.product_name).contains(term, autoescape=True)
            )

        conditions = self._visibility(viewer, item_conditions)
        if order_filter.from_date is not None:
            conditions.append(orders_tbl.c.created_at >= order_filter.from_date)
        if order_filter.to_date is not None:
            conditions.append(orders_tbl.c.created_at <= order_filter.to_date)

        total = await self._session.scalar(
            select(func.count()).select_from(orders_tbl).where(*conditions)
        )
        result = await self._session.execute(
            select(orders_tbl)
            .where(*conditions)
            .order_by(orders_tbl.c.created_at.desc(), orders_tbl.c.id.asc())
            .offset((order_filter.page - 1) * order_filter.page_size)
            .limit(order_filter.page_size)
        )
        orders = await self._hydrate(result.fetchall(), self._seller_scope(viewer))
        return orders, total or 0

    async def search_by_order_number(self, fragment: str, viewer: Viewer) -> List[Order]:
        conditions = self._visibility(viewer)
        conditions.append(orders_tbl.c.order_number.contains(fragment, autoescape=True))
        result = await self._session.execute(
            select(orders_tbl)
            .where(*conditions)
            .order_by(orders_tbl.c.created_at.desc())
        )
        return await self._hydrate(result.fetchall(), self._seller_scope(viewer))

    async def get_stats(self, viewer: Viewer) -> OrderStats:
        if viewer.role == Role.BUYER:
            row = (await self._session.execute(
                select(func.count(), func.coalesce(func.sum(orders_tbl.c.total), 0))
                .where(orders_tbl.c.buyer_id == viewer.user_id)
            )).one()
            return OrderStats(total_orders=row[0], total_spent=row[1])

        if viewer.role == Role.SELLER:
            row = (await self._session.execute(
                select(func.count(), func.coalesce(func.sum(order_items_tbl.c.line_total), 0))
                .where(order_items_tbl.c.seller_id == viewer.user_id)
            )).one()
            return OrderStats(total_order_items=row[0], total_earnings=row[1])

        row = (await self._session.execute(
            select(func.count(), func.coalesce(func.sum(orders_tbl.c.total), 0)).select_from(orders_tbl)
        )).one()
        return OrderStats(total_orders=row[0], total_revenue=row[1])

    def _visibility(self, viewer: Viewer, item_conditions: Optional[list] = None) -> list:
        """WHERE clauses limiting orders to what the viewer may see.

        All item-level criteria must hold for one and the same item.
        """
        conditions = []
        item_conditions = list(item_conditions or [])
        if viewer.role == Role.BUYER:
            conditions.append(orders_tbl.c.buyer_id == viewer.user_id)
        elif viewer.role == Role.SELLER:
            item_conditions.insert(0, order_items_tbl.c.seller_id == viewer.user_id)

        if item_conditions:
            conditions.append(
                select(order_items_tbl.c.id)
                .where(order_items_tbl.c.order_id == orders_tbl.c.id, *item_conditions)
                .exists()
            )
        return conditions

    @staticmethod
    def _seller_scope(viewer: Optional[Viewer]) -> Optional[str]:
        if viewer is not None and viewer.role == Role.SELLER:
            return viewer.user_id
        return None

    async def _hydrate(self, rows, seller_id: Optional[str]) -> List[Order]:
        if not rows:
            return []
        order_ids = [row.id for row in rows]
        stmt = select(order_items_tbl).where(order_items_tbl.c.order_id.in_(order_ids))
        if seller_id is not None:
            stmt = stmt.where(order_items_tbl.c.seller_id == seller_id)
        result = await self._session.execute(
            stmt.order_by(order_items_tbl.c.created_at.asc(), order_items_tbl.c.id.asc())
        )
        items_by_order = defaultdict(list)
        for item_row in result.fetchall():
            items_by_order[item_row.order_id].append(self._item_to_domain(item_row))
        return [self._to_domain(row, items_by_order[row.id]) for row in rows]

    def _to_domain(self, row, items: List[OrderItem]) -> Order:
        """DB → Domain"""
        return Order(
            id=row.id,
            buyer_id=row.buyer_id,
            order_number=row.order_number,
            shipping_address_snapshot=row.shipping_address_snapshot,
            sub_total=row.sub_total,
            tax=row.tax,
            total=row.total,
            items=items,
            created_at=row.created_at,
            updated_at=row.updated_at
        )

    def _item_to_domain(self, row) -> OrderItem:
        return OrderItem(
            id=row.id,
            order_id=row.order_id,
            product_id=row.product_id,
            seller_id=row.seller_id,
            product_name=row.product_name,
            product_image_url=row.product_image_url or "",
            quantity=row.quantity,
            price_at_order_time=row.price_at_order_time,
            line_total=row.line_total,
            status=OrderItemStatus(row.status),
            created_at=row.created_at,
            updated_at=row.updated_at
        )
