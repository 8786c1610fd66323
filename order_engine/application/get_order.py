from order_engine.domain.models import (
    Order, OrderFilter, OrderItem, OrderStats, PagedResult, Viewer
)
from order_engine.domain.exceptions import (
    ForbiddenError, InvalidFilterError, OrderItemNotFoundError, OrderNotFoundError
)
from order_engine.domain.status_machine import OrderItemStatus, valid_next_states


# Read side: these use cases never commit, the unit of work rolls back on exit.


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, viewer: Viewer) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id, viewer)
            if not order:
                raise OrderNotFoundError(order_id)
            return order


class ListOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, viewer: Viewer, order_filter: OrderFilter) -> PagedResult[Order]:
        if order_filter.page < 1 or order_filter.page_size < 1:
            raise InvalidFilterError("page and page_size must be positive")
        if order_filter.from_date and order_filter.to_date and order_filter.from_date > order_filter.to_date:
            raise InvalidFilterError("from_date must be before or equal to to_date")

        async with self._uow() as uow:
            orders, total = await uow.orders.get_paged(viewer, order_filter)
        return PagedResult[Order](
            items=orders,
            total_count=total,
            page=order_filter.page,
            page_size=order_filter.page_size
        )


class SearchOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_number: str, viewer: Viewer) -> list[Order]:
        async with self._uow() as uow:
            return await uow.orders.search_by_order_number(order_number.strip(), viewer)


class GetOrderStatsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, viewer: Viewer) -> OrderStats:
        async with self._uow() as uow:
            return await uow.orders.get_stats(viewer)


class GetSellerOrderItemsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, seller_id: str) -> list[OrderItem]:
        async with self._uow() as uow:
            return await uow.orders.get_items_by_order(order_id, seller_id=seller_id)


class GetOrderItemUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, item_id: str, seller_id: str) -> OrderItem:
        async with self._uow() as uow:
            item = await uow.orders.get_item(item_id)
        if not item:
            raise OrderItemNotFoundError([item_id])
        if item.seller_id != seller_id:
            raise ForbiddenError([item_id])
        return item


class CanCancelOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str) -> bool:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order.can_be_cancelled()


class GetValidNextStatusesUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, item_id: str) -> list[OrderItemStatus]:
        async with self._uow() as uow:
            item = await uow.orders.get_item(item_id)
        if not item:
            raise OrderItemNotFoundError([item_id])
        # Table order, not set order
        return [status for status in OrderItemStatus if status in valid_next_states(item.status)]
