import logging
import random
from datetime import datetime, timezone
from typing import Callable

from order_engine.application.interfaces import OrderRepository
from order_engine.domain.exceptions import ConflictError


logger = logging.getLogger(__name__)


class OrderNumberGenerator:
    """ORD + yyMMddHHmm (UTC) + 3-digit random suffix.

    The existence check only avoids obvious collisions. Two concurrent
    checkouts can still pick the same number; the unique index on
    orders.order_number rejects the second insert.
    """

    def __init__(
        self,
        orders: OrderRepository,
        prefix: str = "ORD",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        rng: random.Random | None = None
    ):
        self._orders = orders
        self._prefix = prefix
        self._clock = clock
        self._rng = rng or random.Random()

    def _candidate(self) -> str:
        timestamp = self._clock().strftime("%y%m%d%H%M")
        return f"{self._prefix}{timestamp}{self._rng.randrange(100, 999)}"

    async def generate(self) -> str:
        order_number = self._candidate()
        if not await self._orders.exists_by_order_number(order_number):
            return order_number

        logger.warning(f"Order number {order_number} already taken, regenerating")
        order_number = self._candidate()
        if await self._orders.exists_by_order_number(order_number):
            raise ConflictError(f"Could not generate a unique order number (last tried {order_number})")
        return order_number
