from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Coupon, CouponUsage


class CouponRepository:

    @staticmethod
    async def create(db: AsyncSession, coupon: Coupon) -> Coupon:
        db.add(coupon)
        await db.commit()
        await db.refresh(coupon)
        return coupon

    @staticmethod
    async def get_by_code(db: AsyncSession, code: str) -> Coupon | None:
        result = await db.execute(
            select(Coupon)
            .where(Coupon.code == code.strip().upper())
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_active(db: AsyncSession, now) -> list[Coupon]:
        result = await db.execute(
            select(Coupon)
            .where(Coupon.is_active.is_(True), Coupon.start_date <= now, Coupon.end_date >= now)
            .order_by(Coupon.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def claim_usage(db: AsyncSession, coupon_id: int, user_id: int, order_id: int,
                          discount_amount: float) -> int | None:
        """
        Count one use of the coupon and append its usage row in one transaction.

        The increment is conditional on both the global and the per-user
        limit, checked by the database in the UPDATE itself. Returns the new
        used_count, or None when a limit was already reached.
        """
        user_uses = (
            select(func.count(CouponUsage.id))
            .where(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id)
            .scalar_subquery()
        )
        stmt = (
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
                or_(Coupon.usage_limit_per_user.is_(None), user_uses < Coupon.usage_limit_per_user),
            )
            .values(used_count=Coupon.used_count + 1)
            .returning(Coupon.used_count)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        used_count = result.scalar_one_or_none()
        if used_count is None:
            await db.rollback()
            return None

        db.add(CouponUsage(
            coupon_id=coupon_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount,
        ))
        await db.commit()
        return used_count
