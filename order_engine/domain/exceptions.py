from order_engine.domain.status_machine import OrderItemStatus


class DomainException(Exception):
    pass


class NotFoundError(DomainException):
    pass


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class OrderItemNotFoundError(NotFoundError):
    def __init__(self, item_ids: list[str]):
        self.item_ids = list(item_ids)
        super().__init__(f"Order items not found: {', '.join(self.item_ids)}")


class InsufficientStockError(DomainException):
    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}. Available: {available}, requested: {requested}"
        )


class InvalidStatusTransitionError(DomainException):
    """Every rejected item of a (bulk) status change, reported together"""

    def __init__(self, failures: list[tuple[str, OrderItemStatus, OrderItemStatus, str]]):
        # (item_id, current, target, message)
        self.failures = list(failures)
        details = "; ".join(f"OrderItem {item_id}: {message}" for item_id, _, _, message in self.failures)
        super().__init__(f"Invalid status transitions: {details}")

    @property
    def item_ids(self) -> list[str]:
        return [item_id for item_id, _, _, _ in self.failures]


class EmptyCartError(DomainException):
    def __init__(self, buyer_id: str):
        self.buyer_id = buyer_id
        super().__init__(f"Cart of buyer {buyer_id} is empty")


class ForbiddenError(DomainException):
    def __init__(self, item_ids: list[str]):
        self.item_ids = list(item_ids)
        super().__init__(f"You don't have access to order items: {', '.join(self.item_ids)}")


class ConflictError(DomainException):
    pass


class PersistenceError(DomainException):
    pass


class InvalidFilterError(DomainException):
    pass
