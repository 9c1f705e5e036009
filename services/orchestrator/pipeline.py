"""
Order Pipeline: turns a cart into a persisted order and drives its status.

create_order runs in three phases:

    1. read and price: product snapshots, subtotal, coupon, tax/shipping
    2. admit (checkout saga): reserve stock per line, persist the order,
       record coupon usage; a failure compensates what already happened
    3. publish: admin feed, per-product stock, low-stock crossings

Every failure is caught here and handed back as an OrderOutcome; nothing
raises out of the pipeline. Publishing happens after admission and can
never change its result.
"""
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InternalError, InvalidError, NotFoundError, StoreError
from shared.observability import ecomm_order_duration_seconds, ecomm_orders_total
from services.coupon_service.engine import PricedItem
from services.coupon_service.service import CouponService
from services.order_service.models import Order, OrderItem
from services.order_service.pricing import FlatShipping, ZeroTax, order_total
from services.order_service.repository import OrderRepository
from services.order_service.schemas import OrderCreate
from services.order_service.state_machine import (
    OrderStatus,
    start_history,
    transition_order_status,
    transition_payment_status,
)
from services.product_service.ledger import StockLedger
from services.product_service.repository import ProductRepository
from services.realtime_service.bus import EventBus
from services.realtime_service.events import (
    publish_new_order,
    publish_order_status_change,
    publish_payment_status_change,
    publish_stock_change,
)
from .checkout_saga import build_checkout_saga

logger = structlog.get_logger(__name__)

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_order_number(now: datetime) -> str:
    return f"ORD-{int(now.timestamp() * 1000)}-{uuid4().hex[:6].upper()}"


@dataclass(frozen=True)
class LineSnapshot:
    """Product data captured when the order is priced."""
    product_id: int
    name: str
    sku: str | None
    price: float
    quantity: int
    category_id: int | None = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            product_id=self.product_id,
            name=self.name,
            sku=self.sku,
            price=self.price,
            quantity=self.quantity,
            category_id=self.category_id,
        )


@dataclass
class OrderOutcome:
    order: Order | None = None
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Order:
        if self.error is not None:
            raise self.error
        return self.order


class OrderPipeline:

    def __init__(self, event_bus: EventBus, tax=None, shipping=None,
                 clock: Callable[[], datetime] = utcnow, currency: str = DEFAULT_CURRENCY):
        self.event_bus = event_bus
        self.tax = tax or ZeroTax()
        self.shipping = shipping or FlatShipping(0.0)
        self.clock = clock
        self.currency = currency

    # ------------------------------------------------------------------
    # Order creation
    # ------------------------------------------------------------------
    async def create_order(self, db: AsyncSession, user_id: int, data: OrderCreate) -> OrderOutcome:
        started = time.perf_counter()
        log = logger.bind(user_id=user_id, items=len(data.items), coupon=data.coupon_code)
        try:
            order, reservations = await self._admit(db, user_id, data)
        except StoreError as e:
            await db.rollback()
            log.info("order_rejected", kind=e.kind, reason=e.message)
            ecomm_orders_total.labels(status=e.kind).inc()
            return OrderOutcome(error=e)
        except SQLAlchemyError as e:
            await db.rollback()
            log.error("order_storage_failure", error=str(e))
            ecomm_orders_total.labels(status=InternalError.kind).inc()
            return OrderOutcome(error=InternalError("Failed to create order"))
        finally:
            ecomm_order_duration_seconds.observe(time.perf_counter() - started)

        ecomm_orders_total.labels(status="success").inc()
        log.info("order_created", order_id=order.id, order_number=order.order_number, total=order.total_amount)

        publish_new_order(self.event_bus, order)
        for mutation in reservations:
            publish_stock_change(self.event_bus, mutation)
        return OrderOutcome(order=order)

    async def _admit(self, db: AsyncSession, user_id: int, data: OrderCreate):
        now = self.clock()
        lines = await self._snapshot_lines(db, data)
        subtotal = round(sum(line.line_total for line in lines), 2)

        coupon_ctx = None
        discount = 0.0
        if data.coupon_code:
            coupon = await CouponService.get_by_code(db, data.coupon_code)
            priced = [
                PricedItem(product_id=l.product_id, price=l.price, quantity=l.quantity, category_id=l.category_id)
                for l in lines
            ]
            result = await CouponService.score(db, coupon, user_id, subtotal, priced, now)
            result.raise_for_outcome()
            discount = result.discount_amount
            coupon_ctx = {
                "id": coupon.id,
                "code": coupon.code,
                "discount_type": coupon.discount_type,
                "discount_value": coupon.discount_value,
            }

        shipping_address = data.shipping_address.model_dump()
        tax = round(self.tax.tax_for(subtotal, lines, shipping_address), 2)
        shipping = round(self.shipping.shipping_for(subtotal, lines, shipping_address), 2)
        total = order_total(subtotal, tax, shipping, discount)
        if total < 0:
            raise InvalidError(f"Order total cannot be negative ({total})")

        def build_order() -> Order:
            order = Order(
                order_number=new_order_number(now),
                user_id=user_id,
                created_at=now,
                updated_at=now,
                shipping_address=shipping_address,
                billing_address=(data.billing_address or data.shipping_address).model_dump(),
                payment_method=data.payment_method,
                subtotal=subtotal,
                tax_amount=tax,
                shipping_amount=shipping,
                discount_amount=discount,
                total_amount=total,
                currency=self.currency,
                coupon_code=coupon_ctx["code"] if coupon_ctx else None,
                coupon_discount_type=coupon_ctx["discount_type"] if coupon_ctx else None,
                coupon_discount_value=coupon_ctx["discount_value"] if coupon_ctx else None,
                notes=data.notes,
                items=[line.to_order_item() for line in lines],
            )
            start_history(order, actor=f"user:{user_id}", now=now)
            return order

        ctx = {
            "db": db,
            "now": now,
            "user_id": user_id,
            "line_items": lines,
            "reservations": {},
            "coupon": coupon_ctx,
            "discount_amount": discount,
            "build_order": build_order,
        }
        await build_checkout_saga(ctx).execute(ctx)

        reservations = [ctx["reservations"][i] for i in sorted(ctx["reservations"])]
        return ctx["order"], reservations

    async def _snapshot_lines(self, db: AsyncSession, data: OrderCreate) -> list[LineSnapshot]:
        lines = []
        for item in data.items:
            if item.quantity < 1:
                raise InvalidError(f"Quantity for product {item.product_id} must be at least 1")
            product = await ProductRepository.get_product_by_id(db, item.product_id)
            if product is None:
                raise NotFoundError(f"Product not found: {item.product_id}")
            if not product.is_active:
                raise InvalidError(f"Product is not available: {product.name}")
            lines.append(LineSnapshot(
                product_id=product.id,
                name=product.name,
                sku=product.sku,
                price=product.price,
                quantity=item.quantity,
                category_id=product.category_id,
            ))
        return lines

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------
    async def update_order_status(self, db: AsyncSession, order_id: int, new_status, actor: str,
                                  note: str | None = None, tracking_number: str | None = None,
                                  shipping_carrier: str | None = None) -> OrderOutcome:
        try:
            order = await self._load(db, order_id)
            old_status = transition_order_status(order, new_status, actor=actor, now=self.clock(), note=note)
            if tracking_number:
                order.tracking_number = tracking_number
            if shipping_carrier:
                order.shipping_carrier = shipping_carrier
            await OrderRepository.save(db, order)
        except StoreError as e:
            await db.rollback()
            logger.info("order_status_rejected", order_id=order_id, requested=str(new_status), kind=e.kind)
            return OrderOutcome(error=e)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("order_status_storage_failure", order_id=order_id, error=str(e))
            return OrderOutcome(error=InternalError("Failed to update order status"))

        logger.info("order_status_changed", order_id=order.id, old=old_status.value, new=order.order_status, actor=actor)
        publish_order_status_change(self.event_bus, order, old_status.value, order.order_status)
        if order.order_status == OrderStatus.CANCELLED.value:
            lines = [(item.product_id, item.quantity) for item in order.items]
            if not await self._restock_cancelled(db, order_id, lines):
                # a rolled back restock expired the loaded order
                order = await self._load(db, order_id)
        return OrderOutcome(order=order)

    async def update_payment_status(self, db: AsyncSession, order_id: int, new_status, actor: str,
                                    payment_id: str | None = None, note: str | None = None) -> OrderOutcome:
        try:
            order = await self._load(db, order_id)
            old_status = transition_payment_status(
                order, new_status, actor=actor, now=self.clock(), note=note, payment_id=payment_id
            )
            await OrderRepository.save(db, order)
        except StoreError as e:
            await db.rollback()
            logger.info("payment_status_rejected", order_id=order_id, requested=str(new_status), kind=e.kind)
            return OrderOutcome(error=e)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("payment_status_storage_failure", order_id=order_id, error=str(e))
            return OrderOutcome(error=InternalError("Failed to update payment status"))

        logger.info("payment_status_changed", order_id=order.id, old=old_status.value, new=order.payment_status, actor=actor)
        publish_payment_status_change(self.event_bus, order, old_status.value, order.payment_status)
        return OrderOutcome(order=order)

    async def _load(self, db: AsyncSession, order_id: int) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def _restock_cancelled(self, db: AsyncSession, order_id: int, lines: list[tuple[int, int]]) -> bool:
        """Put a cancelled order's units back. The cancellation already stands.

        Returns False when a storage failure forced a session rollback.
        """
        clean = True
        for product_id, quantity in lines:
            try:
                mutation = await StockLedger.release(db, product_id, quantity)
            except NotFoundError as e:
                logger.warning("cancelled_order_restock_skipped", order_id=order_id, product_id=product_id, reason=e.message)
                continue
            except SQLAlchemyError as e:
                await db.rollback()
                clean = False
                logger.error("cancelled_order_restock_failed", order_id=order_id, product_id=product_id, error=str(e))
                continue
            publish_stock_change(self.event_bus, mutation)
        return clean
