from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Generic, Optional, TypeVar
from pydantic import BaseModel, field_validator

from order_engine.domain.status_machine import OrderItemStatus, can_transition


T = TypeVar("T")


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str) -> "Role":
        return cls(value.strip().lower())


class Viewer(BaseModel):
    """Resolved caller: scopes every read."""
    user_id: str
    role: Role


class StockDirection(str, Enum):
    DECREMENT = "decrement"
    RESTORE = "restore"


class StockAdjustment(BaseModel):
    product_id: str
    quantity: int
    direction: StockDirection


class Product(BaseModel):
    """Value Object: product row owned by the catalog"""
    id: str
    seller_id: str
    name: str
    price: Decimal
    stock: int
    image_url: str = ""


class CartItem(BaseModel):
    id: str
    user_id: str
    product_id: str
    quantity: int


class OrderItem(BaseModel):
    """Domain Entity: one product line of an order"""
    id: str
    order_id: str
    product_id: str
    seller_id: str
    product_name: str
    product_image_url: str = ""
    quantity: int
    price_at_order_time: Decimal
    line_total: Decimal
    status: OrderItemStatus
    created_at: datetime
    updated_at: datetime

    def can_transition_to(self, target: OrderItemStatus) -> bool:
        return can_transition(self.status, target)

    def restore_adjustment(self) -> StockAdjustment:
        """Compensation for this line: always the immutable ordered quantity"""
        return StockAdjustment(
            product_id=self.product_id,
            quantity=self.quantity,
            direction=StockDirection.RESTORE
        )


class Order(BaseModel):
    """Domain Entity: order aggregate"""
    id: str
    buyer_id: str
    order_number: str
    shipping_address_snapshot: str
    sub_total: Decimal
    tax: Decimal
    total: Decimal
    items: list[OrderItem] = []
    created_at: datetime
    updated_at: datetime

    def can_be_cancelled(self) -> bool:
        """Business rule: only while every item is still Pending or Processing"""
        return bool(self.items) and all(
            item.status in (OrderItemStatus.PENDING, OrderItemStatus.PROCESSING)
            for item in self.items
        )

    def items_for_seller(self, seller_id: str) -> list[OrderItem]:
        return [item for item in self.items if item.seller_id == seller_id]


class OrderFilter(BaseModel):
    page: int = 1
    page_size: int = 10
    status: Optional[OrderItemStatus] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    search_term: Optional[str] = None

    @field_validator("from_date", "to_date")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Query strings may carry naive or offset timestamps; naive means UTC
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class PagedResult(BaseModel, Generic[T]):
    items: list[T]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return -(-self.total_count // self.page_size) if self.page_size else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1


class OrderStats(BaseModel):
    total_orders: Optional[int] = None
    total_spent: Optional[Decimal] = None
    total_order_items: Optional[int] = None
    total_earnings: Optional[Decimal] = None
    total_revenue: Optional[Decimal] = None
