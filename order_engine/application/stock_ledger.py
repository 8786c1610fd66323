import logging
from collections import defaultdict
from typing import Iterable

from order_engine.application.interfaces import ProductRepository
from order_engine.domain.exceptions import InsufficientStockError, ProductNotFoundError
from order_engine.domain.models import StockAdjustment, StockDirection


logger = logging.getLogger(__name__)


class StockLedger:
    """All writes to Product.stock go through here.

    A decrement is a single conditional UPDATE ("subtract where stock >= q"),
    so the check and the write are one atomic row mutation. Nothing here reads
    stock and writes it back.
    """

    def __init__(self, products: ProductRepository):
        self._products = products

    async def decrement(self, product_id: str, quantity: int) -> None:
        _check_quantity(quantity)
        if await self._products.decrement_stock(product_id, quantity):
            return

        # Zero rows touched: only now look at the row to report why
        product = await self._products.get_by_id(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        logger.warning(
            f"Insufficient stock for product {product_id}: requested {quantity}, available {product.stock}"
        )
        raise InsufficientStockError(product_id, quantity, product.stock)

    async def restore(self, product_id: str, quantity: int) -> None:
        _check_quantity(quantity)
        if not await self._products.increment_stock(product_id, quantity):
            raise ProductNotFoundError(product_id)

    async def apply(self, adjustment: StockAdjustment) -> None:
        if adjustment.direction == StockDirection.DECREMENT:
            await self.decrement(adjustment.product_id, adjustment.quantity)
        else:
            await self.restore(adjustment.product_id, adjustment.quantity)

    async def bulk_restore(self, adjustments: Iterable[StockAdjustment]) -> None:
        totals: dict[str, int] = defaultdict(int)
        for adjustment in adjustments:
            if adjustment.direction != StockDirection.RESTORE:
                raise ValueError(f"bulk_restore got a {adjustment.direction.value} adjustment")
            _check_quantity(adjustment.quantity)
            totals[adjustment.product_id] += adjustment.quantity

        # Fixed row order across concurrent restores
        for product_id in sorted(totals):
            await self.restore(product_id, totals[product_id])
        logger.info(f"Stock restored for {len(totals)} products")


def _check_quantity(quantity: int) -> None:
    if quantity <= 0:
        raise ValueError(f"Stock adjustment quantity must be positive, got {quantity}")
