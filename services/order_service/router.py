from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.errors import StoreError
from shared.security import ORDER_RATE_LIMIT, Identity, get_current_user, limiter, require_admin
from services.orchestrator.dependencies import get_order_pipeline
from services.orchestrator.pipeline import OrderOutcome, OrderPipeline
from .schemas import OrderCreate, OrderListResponse, OrderResponse, OrderStatusUpdate, PaymentStatusUpdate
from .service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


def _order_or_http_error(outcome: OrderOutcome):
    if not outcome.ok:
        raise outcome.error.to_http()
    return outcome.order


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(ORDER_RATE_LIMIT)
async def create_order(
    request: Request,                       # slowapi needs this to key the limit
    payload: OrderCreate,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    pipeline: OrderPipeline = Depends(get_order_pipeline),
):
    outcome = await pipeline.create_order(db, identity.user_id, payload)
    return _order_or_http_error(outcome)


@router.get("/me", response_model=OrderListResponse)
async def my_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    order_status: str | None = Query(default=None, alias="status"),
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await OrderService.list_orders(
            db, page=page, limit=limit, user_id=identity.user_id, order_status=order_status
        )
    except StoreError as e:
        raise e.to_http()


@router.get("/", response_model=OrderListResponse, dependencies=[Depends(require_admin)])
async def all_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    order_status: str | None = Query(default=None, alias="status"),
    payment_status: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await OrderService.list_orders(
            db, page=page, limit=limit, order_status=order_status, payment_status=payment_status,
            start_date=start_date, end_date=end_date,
        )
    except StoreError as e:
        raise e.to_http()


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await OrderService.get_order(db, order_id, identity)
    except StoreError as e:
        raise e.to_http()


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    pipeline: OrderPipeline = Depends(get_order_pipeline),
):
    outcome = await pipeline.update_order_status(
        db,
        order_id,
        payload.order_status,
        actor=identity.actor,
        note=payload.notes,
        tracking_number=payload.tracking_number,
        shipping_carrier=payload.shipping_carrier,
    )
    return _order_or_http_error(outcome)


@router.patch("/{order_id}/payment", response_model=OrderResponse)
async def update_payment_status(
    order_id: int,
    payload: PaymentStatusUpdate,
    identity: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    pipeline: OrderPipeline = Depends(get_order_pipeline),
):
    outcome = await pipeline.update_payment_status(
        db,
        order_id,
        payload.payment_status,
        actor=identity.actor,
        payment_id=payload.payment_id,
        note=payload.notes,
    )
    return _order_or_http_error(outcome)
