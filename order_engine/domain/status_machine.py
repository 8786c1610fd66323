"""Order-item lifecycle.

Pending -> Processing -> Shipped -> Delivered, with Cancelled reachable from
Pending or Processing only. Delivered and Cancelled are terminal.
"""
from enum import Enum


class OrderItemStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


_TRANSITIONS: dict[OrderItemStatus, tuple[OrderItemStatus, ...]] = {
    OrderItemStatus.PENDING: (OrderItemStatus.PROCESSING, OrderItemStatus.CANCELLED),
    OrderItemStatus.PROCESSING: (OrderItemStatus.SHIPPED, OrderItemStatus.CANCELLED),
    OrderItemStatus.SHIPPED: (OrderItemStatus.DELIVERED,),
    OrderItemStatus.DELIVERED: (),
    OrderItemStatus.CANCELLED: (),
}


def can_transition(current: OrderItemStatus, target: OrderItemStatus) -> bool:
    return target in _TRANSITIONS.get(current, ())


def valid_next_states(current: OrderItemStatus) -> frozenset[OrderItemStatus]:
    return frozenset(_TRANSITIONS.get(current, ()))


def source_states(target: OrderItemStatus) -> frozenset[OrderItemStatus]:
    """States from which `target` may be entered"""
    return frozenset(state for state, allowed in _TRANSITIONS.items() if target in allowed)


def transition_error(current: OrderItemStatus, target: OrderItemStatus) -> str:
    if current == target:
        return f"Order item is already in {current.value} status"

    allowed = _TRANSITIONS.get(current, ())
    if not allowed:
        return f"Order item in {current.value} status cannot be changed (terminal state)"

    return (
        f"Cannot transition from {current.value} to {target.value}. "
        f"Valid transitions: {', '.join(state.value for state in allowed)}"
    )
