from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InvalidError, NotFoundError
from shared.observability import ecomm_coupon_evaluations_total
from services.order_service.repository import OrderRepository
from services.product_service.repository import ProductRepository
from . import engine
from .models import Coupon
from .repository import CouponRepository
from .schemas import CouponCreate, CouponItem

logger = structlog.get_logger(__name__)


class CouponService:

    @staticmethod
    async def create_coupon(db: AsyncSession, data: CouponCreate) -> Coupon:
        if await CouponRepository.get_by_code(db, data.code):
            raise InvalidError(f"Coupon code {data.code} already exists")
        return await CouponRepository.create(db, Coupon(**data.model_dump()))

    @staticmethod
    async def get_by_code(db: AsyncSession, code: str) -> Coupon:
        coupon = await CouponRepository.get_by_code(db, code)
        if coupon is None:
            raise NotFoundError(f"Coupon {code.strip().upper()} not found")
        return coupon

    @staticmethod
    async def score(db: AsyncSession, coupon: Coupon, user_id: int, order_amount: float,
                    items: list[engine.PricedItem], now: datetime | None = None) -> engine.EligibilityResult:
        prior_orders = 0
        if coupon.first_time_customers_only:
            prior_orders = await OrderRepository.count_for_user(db, user_id)

        result = engine.evaluate(coupon, user_id, order_amount, items, now=now, prior_orders=prior_orders)
        ecomm_coupon_evaluations_total.labels(outcome=result.outcome.value).inc()
        logger.info(
            "coupon_evaluated",
            code=coupon.code,
            user_id=user_id,
            order_amount=order_amount,
            outcome=result.outcome.value,
            reason=result.reason,
            discount=result.discount_amount,
        )
        return result

    @staticmethod
    async def evaluate_coupon(db: AsyncSession, code: str, user_id: int, order_amount: float,
                              items: list[CouponItem] = (), now: datetime | None = None) -> engine.EligibilityResult:
        """Read-only eligibility and discount check (validate before checkout)."""
        coupon = await CouponService.get_by_code(db, code)
        priced = await CouponService._price_items(db, items)
        return await CouponService.score(db, coupon, user_id, order_amount, priced, now)

    @staticmethod
    async def available_coupons(db: AsyncSession, user_id: int, now: datetime | None = None) -> list[Coupon]:
        now = now or datetime.now(timezone.utc)
        prior_orders = await OrderRepository.count_for_user(db, user_id)
        coupons = await CouponRepository.get_active(db, now)
        return [
            c for c in coupons
            if engine.validity_failure(c, now) is None
            and engine.user_failure(c, user_id, prior_orders) is None
        ]

    @staticmethod
    async def _price_items(db: AsyncSession, items) -> list[engine.PricedItem]:
        if not items:
            return []
        products = {
            p.id: p for p in await ProductRepository.get_products_by_ids(db, [i.product_id for i in items])
        }
        priced = []
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                raise NotFoundError(f"Product {item.product_id} not found")
            price = item.price if item.price is not None else product.price
            priced.append(engine.PricedItem(
                product_id=product.id,
                price=price,
                quantity=item.quantity,
                category_id=product.category_id,
            ))
        return priced
