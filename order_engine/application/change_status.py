import logging
from typing import Optional

from order_engine.application.interfaces import UnitOfWork
from order_engine.application.stock_ledger import StockLedger
from order_engine.domain.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStatusTransitionError,
    OrderItemNotFoundError,
    OrderNotFoundError,
)
from order_engine.domain.models import OrderItem, Role, Viewer
from order_engine.domain.status_machine import (
    OrderItemStatus, can_transition, source_states, transition_error
)


logger = logging.getLogger(__name__)


def _unique(ids: list[str]) -> list[str]:
    return list(dict.fromkeys(ids))


async def apply_status_change(
    uow: UnitOfWork,
    item_ids: list[str],
    target: OrderItemStatus,
    seller_id: Optional[str] = None
) -> list[OrderItem]:
    """Validate every item, then mutate every item.

    Nothing is written until all requested items have passed validation. The
    caller owns the transaction and commits on success.
    """
    item_ids = _unique(item_ids)

    # Pass 1: validate all
    items = await uow.orders.get_items(item_ids)
    found = {item.id for item in items}
    missing = [item_id for item_id in item_ids if item_id not in found]
    if missing:
        raise OrderItemNotFoundError(missing)

    if seller_id is not None:
        foreign = [item.id for item in items if item.seller_id != seller_id]
        if foreign:
            raise ForbiddenError(foreign)

    failures = [
        (item.id, item.status, target, transition_error(item.status, target))
        for item in items
        if not can_transition(item.status, target)
    ]
    if failures:
        logger.warning(f"Rejected status change to {target.value} for {len(failures)} of {len(items)} items")
        raise InvalidStatusTransitionError(failures)

    # Pass 2: mutate all
    updated = await uow.orders.update_items_status(item_ids, target, source_states(target))
    if updated != len(item_ids):
        raise ConflictError(
            f"Order items changed concurrently: expected {len(item_ids)} updates, applied {updated}"
        )

    if target == OrderItemStatus.CANCELLED:
        await StockLedger(uow.products).bulk_restore(item.restore_adjustment() for item in items)

    logger.info(f"{len(items)} order items moved to {target.value}")
    return [item.model_copy(update={"status": target}) for item in items]


class UpdateOrderItemStatusUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, item_id: str, target: OrderItemStatus, seller_id: Optional[str] = None) -> OrderItem:
        async with self._uow() as uow:
            items = await apply_status_change(uow, [item_id], target, seller_id)
            await uow.commit()
            # Re-read for the stored updated_at
            return await uow.orders.get_item(item_id) or items[0]


class BulkUpdateOrderItemStatusUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self, item_ids: list[str], target: OrderItemStatus, seller_id: Optional[str] = None
    ) -> list[OrderItem]:
        async with self._uow() as uow:
            await apply_status_change(uow, item_ids, target, seller_id)
            await uow.commit()
            return await uow.orders.get_items(_unique(item_ids))


class CancelOrderItemUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, item_id: str, seller_id: Optional[str] = None, reason: Optional[str] = None) -> None:
        async with self._uow() as uow:
            await apply_status_change(uow, [item_id], OrderItemStatus.CANCELLED, seller_id)
            await uow.commit()
        logger.info(f"Order item {item_id} cancelled. Reason: {reason or 'not given'}")


class BulkCancelOrderItemsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self, item_ids: list[str], seller_id: Optional[str] = None, reason: Optional[str] = None
    ) -> None:
        async with self._uow() as uow:
            await apply_status_change(uow, item_ids, OrderItemStatus.CANCELLED, seller_id)
            await uow.commit()
        logger.info(f"{len(_unique(item_ids))} order items cancelled. Reason: {reason or 'not given'}")


class CancelOrderUseCase:
    """Cancel every item of an order the viewer can see.

    A buyer cancels the whole order; a seller only their own lines of it.
    """

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, viewer: Viewer, reason: Optional[str] = None) -> None:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id, viewer)
            if not order or not order.items:
                raise OrderNotFoundError(order_id)

            seller_id = viewer.user_id if viewer.role == Role.SELLER else None
            await apply_status_change(
                uow, [item.id for item in order.items], OrderItemStatus.CANCELLED, seller_id
            )
            await uow.commit()
        logger.info(f"Order {order_id} cancelled by {viewer.role.value} {viewer.user_id}. Reason: {reason or 'not given'}")
