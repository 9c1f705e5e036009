from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order, OrderItem, OrderStatusHistory, PaymentStatusHistory

class OrderRepository:
    @staticmethod
    async def create_order(db: AsyncSession, order: Order):
        db.add(order)
        await db.commit()
        return order

    @staticmethod
    async def save(db: AsyncSession, order: Order):
        await db.commit()
        return order

    @staticmethod
    async def delete_order(db: AsyncSession, order_id: int):
        """Remove an order that never completed checkout, children first."""
        for model in (OrderItem, OrderStatusHistory, PaymentStatusHistory):
            await db.execute(
                delete(model).where(model.order_id == order_id).execution_options(synchronize_session=False)
            )
        await db.execute(delete(Order).where(Order.id == order_id).execution_options(synchronize_session=False))
        await db.commit()

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int):
        result = await db.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def count_for_user(db: AsyncSession, user_id: int) -> int:
        result = await db.execute(select(func.count(Order.id)).where(Order.user_id == user_id))
        return result.scalar_one()

    @staticmethod
    async def list_orders(db: AsyncSession, page: int = 1, limit: int = 20, user_id: int | None = None,
                          order_status: str | None = None, payment_status: str | None = None,
                          start_date: datetime | None = None, end_date: datetime | None = None):
        """Newest first. Returns (orders, total matching)."""
        filters = []
        if user_id is not None:
            filters.append(Order.user_id == user_id)
        if order_status:
            filters.append(Order.order_status == order_status)
        if payment_status:
            filters.append(Order.payment_status == payment_status)
        if start_date:
            filters.append(Order.created_at >= start_date)
        if end_date:
            filters.append(Order.created_at <= end_date)

        total = (await db.execute(select(func.count(Order.id)).where(*filters))).scalar_one()
        result = await db.execute(
            select(Order)
            .where(*filters)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return result.scalars().all(), total
