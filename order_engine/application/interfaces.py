from abc import ABC, abstractmethod
from typing import Optional, List, Iterable
from order_engine.domain.models import (
    CartItem, Order, OrderFilter, OrderItem, OrderStats, Product, Viewer
)
from order_engine.domain.status_machine import OrderItemStatus


class ProductRepository(ABC):
    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        pass

    @abstractmethod
    async def get_many(self, product_ids: Iterable[str]) -> dict[str, Product]:
        pass

    @abstractmethod
    async def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Conditional decrement; False when no row had enough stock"""
        pass

    @abstractmethod
    async def increment_stock(self, product_id: str, quantity: int) -> bool:
        pass


class CartRepository(ABC):
    @abstractmethod
    async def get_items(self, user_id: str) -> List[CartItem]:
        pass

    @abstractmethod
    async def delete_items(self, user_id: str, item_ids: List[str]) -> int:
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str, viewer: Optional[Viewer] = None) -> Optional[Order]:
        pass

    @abstractmethod
    async def exists_by_order_number(self, order_number: str) -> bool:
        pass

    @abstractmethod
    async def get_item(self, item_id: str) -> Optional[OrderItem]:
        pass

    @abstractmethod
    async def get_items(self, item_ids: List[str]) -> List[OrderItem]:
        pass

    @abstractmethod
    async def get_items_by_order(self, order_id: str, seller_id: Optional[str] = None) -> List[OrderItem]:
        pass

    @abstractmethod
    async def update_items_status(
        self,
        item_ids: List[str],
        status: OrderItemStatus,
        from_statuses: Iterable[OrderItemStatus]
    ) -> int:
        pass

    @abstractmethod
    async def get_paged(self, viewer: Viewer, order_filter: OrderFilter) -> tuple[List[Order], int]:
        pass

    @abstractmethod
    async def search_by_order_number(self, fragment: str, viewer: Viewer) -> List[Order]:
        pass

    @abstractmethod
    async def get_stats(self, viewer: Viewer) -> OrderStats:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def products(self) -> ProductRepository:
        pass

    @property
    @abstractmethod
    def carts(self) -> CartRepository:
        pass

    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass
