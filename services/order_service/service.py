import math
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFoundError
from shared.security import Identity
from .repository import OrderRepository
from .schemas import OrderListResponse, OrderResponse, Pagination
from .state_machine import parse_order_status, parse_payment_status

class OrderService:
    """Read side of orders. Writes go through the order pipeline."""

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int, identity: Identity):
        order = await OrderRepository.get_order(db, order_id)
        # Someone else's order is reported the same as a missing one
        if not order or (order.user_id != identity.user_id and not identity.is_admin):
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    async def list_orders(db: AsyncSession, page: int = 1, limit: int = 20, user_id: int | None = None,
                          order_status: str | None = None, payment_status: str | None = None,
                          start_date: datetime | None = None, end_date: datetime | None = None) -> OrderListResponse:
        if order_status:
            order_status = parse_order_status(order_status).value
        if payment_status:
            payment_status = parse_payment_status(payment_status).value

        orders, total = await OrderRepository.list_orders(
            db, page=page, limit=limit, user_id=user_id, order_status=order_status,
            payment_status=payment_status, start_date=start_date, end_date=end_date,
        )
        return OrderListResponse(
            orders=[OrderResponse.model_validate(o) for o in orders],
            pagination=Pagination(
                current_page=page,
                total_pages=math.ceil(total / limit) if total else 0,
                total_orders=total,
                has_next_page=(page - 1) * limit + limit < total,
                has_prev_page=page > 1,
            ),
        )
