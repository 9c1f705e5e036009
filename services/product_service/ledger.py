"""
Stock Ledger: the only writer of Product.stock during order fulfilment.

Every mutation is one conditional UPDATE at the storage layer, so concurrent
reservations for the same product serialize in the database instead of
racing through a read-modify-write in Python. Each call commits on its own,
which makes a reservation a compensable step: `release` undoes it.
"""
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InsufficientStockError, InvalidError, NotFoundError
from shared.observability import ecomm_stock_reservations_total
from .repository import ProductRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockMutation:
    product_id: int
    name: str
    old_stock: int
    new_stock: int
    threshold: int
    track_quantity: bool
    allow_backorder: bool

    @property
    def is_in_stock(self) -> bool:
        if not self.track_quantity or self.allow_backorder:
            return True
        return self.new_stock > 0

    @property
    def low_stock(self) -> bool:
        return self.new_stock <= self.threshold

    @property
    def crossed_low_stock(self) -> bool:
        """Edge trigger: stock went from above the threshold to at/below it."""
        return self.old_stock > self.threshold >= self.new_stock

    @classmethod
    def from_row(cls, row, delta: int) -> "StockMutation":
        return cls(
            product_id=row.id,
            name=row.name,
            old_stock=row.stock - delta,
            new_stock=row.stock,
            threshold=row.low_stock_threshold,
            track_quantity=row.track_quantity,
            allow_backorder=row.allow_backorder,
        )


def _check_quantity(quantity: int):
    if not isinstance(quantity, int) or quantity < 1:
        raise InvalidError(f"Quantity must be a positive integer, got {quantity!r}")


class StockLedger:

    @staticmethod
    async def reserve(db: AsyncSession, product_id: int, quantity: int) -> StockMutation:
        """Take `quantity` units or raise InsufficientStockError with nothing mutated."""
        _check_quantity(quantity)
        row = await ProductRepository.decrement_stock(db, product_id, quantity)

        if row is None:
            product = await ProductRepository.get_product_by_id(db, product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            ecomm_stock_reservations_total.labels(result="insufficient").inc()
            logger.info(
                "stock_reservation_rejected",
                product_id=product_id,
                requested=quantity,
                available=product.stock,
            )
            raise InsufficientStockError(product_id, quantity, product.name)

        # stock went down by quantity, so the pre-write value is new + quantity
        mutation = StockMutation.from_row(row, delta=-quantity)
        ecomm_stock_reservations_total.labels(result="reserved").inc()
        logger.info(
            "stock_reserved",
            product_id=product_id,
            quantity=quantity,
            old_stock=mutation.old_stock,
            new_stock=mutation.new_stock,
        )
        return mutation

    @staticmethod
    async def release(db: AsyncSession, product_id: int, quantity: int) -> StockMutation:
        """Give back a reservation (saga compensation or order cancellation)."""
        _check_quantity(quantity)
        row = await ProductRepository.increment_stock(db, product_id, quantity)
        if row is None:
            raise NotFoundError(f"Product {product_id} not found")

        mutation = StockMutation.from_row(row, delta=quantity)
        ecomm_stock_reservations_total.labels(result="released").inc()
        logger.info(
            "stock_released",
            product_id=product_id,
            quantity=quantity,
            old_stock=mutation.old_stock,
            new_stock=mutation.new_stock,
        )
        return mutation

    @staticmethod
    async def restock(db: AsyncSession, product_id: int, quantity: int) -> StockMutation:
        """Receive new inventory. Unlike release, this is not a sale reversal."""
        _check_quantity(quantity)
        row = await ProductRepository.increment_stock(db, product_id, quantity, reverse_sale=False)
        if row is None:
            raise NotFoundError(f"Product {product_id} not found")
        return StockMutation.from_row(row, delta=quantity)
