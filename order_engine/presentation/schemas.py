from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from order_engine.config import settings
from order_engine.domain.models import Order, OrderItem, OrderStats, PagedResult
from order_engine.domain.status_machine import OrderItemStatus


class OrderLineRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0, le=settings.MAX_LINE_QUANTITY)


class CreateOrderRequest(BaseModel):
    items: list[OrderLineRequest] = Field(..., min_length=1, max_length=settings.MAX_ORDER_LINES)
    shipping_address: str = Field(..., min_length=1, max_length=500)


class CreateOrderFromCartRequest(BaseModel):
    shipping_address: str = Field(..., min_length=1, max_length=500)


class UpdateOrderItemStatusRequest(BaseModel):
    status: OrderItemStatus


class BulkUpdateOrderItemStatusRequest(BaseModel):
    order_item_ids: list[str] = Field(..., min_length=1, max_length=settings.MAX_BULK_ITEMS)
    status: OrderItemStatus


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BulkCancelOrderItemsRequest(BaseModel):
    order_item_ids: list[str] = Field(..., min_length=1, max_length=settings.MAX_BULK_ITEMS)
    reason: Optional[str] = Field(None, max_length=500)


class OrderItemResponse(BaseModel):
    id: str
    order_id: str
    product_id: str
    seller_id: str
    product_name: str
    product_image_url: str
    quantity: int
    price_at_order_time: Decimal
    line_total: Decimal
    status: OrderItemStatus
    updated_at: datetime

    @classmethod
    def from_domain(cls, item: OrderItem):
        return cls(
            id=item.id,
            order_id=item.order_id,
            product_id=item.product_id,
            seller_id=item.seller_id,
            product_name=item.product_name,
            product_image_url=item.product_image_url,
            quantity=item.quantity,
            price_at_order_time=item.price_at_order_time,
            line_total=item.line_total,
            status=item.status,
            updated_at=item.updated_at
        )


class OrderResponse(BaseModel):
    id: str
    order_number: str
    buyer_id: str
    sub_total: Decimal
    tax: Decimal
    total: Decimal
    shipping_address_snapshot: str
    order_items: list[OrderItemResponse]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order: Order):
        return cls(
            id=order.id,
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            sub_total=order.sub_total,
            tax=order.tax,
            total=order.total,
            shipping_address_snapshot=order.shipping_address_snapshot,
            order_items=[OrderItemResponse.from_domain(item) for item in order.items],
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class PagedOrdersResponse(BaseModel):
    items: list[OrderResponse]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def from_domain(cls, result: PagedResult[Order]):
        return cls(
            items=[OrderResponse.from_domain(order) for order in result.items],
            total_count=result.total_count,
            page=result.page,
            page_size=result.page_size,
            total_pages=result.total_pages,
            has_next_page=result.has_next_page,
            has_previous_page=result.has_previous_page
        )


class OrderStatsResponse(BaseModel):
    total_orders: Optional[int] = None
    total_spent: Optional[Decimal] = None
    total_order_items: Optional[int] = None
    total_earnings: Optional[Decimal] = None
    total_revenue: Optional[Decimal] = None

    @classmethod
    def from_domain(cls, stats: OrderStats):
        return cls(**stats.model_dump())


class CanCancelResponse(BaseModel):
    order_id: str
    can_cancel: bool


class NextStatusesResponse(BaseModel):
    order_item_id: str
    valid_next_statuses: list[OrderItemStatus]


class ErrorResponse(BaseModel):
    detail: str
