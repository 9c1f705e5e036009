from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.errors import StoreError
from shared.security import Identity, get_current_user, require_admin
from .schemas import CouponCreate, CouponSummary, CouponValidateRequest, CouponValidateResponse
from .service import CouponService

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("/validate", response_model=CouponValidateResponse)
async def validate_coupon(
    payload: CouponValidateRequest,
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await CouponService.evaluate_coupon(
            db, payload.code, identity.user_id, payload.order_amount, payload.items
        )
        result.raise_for_outcome()
        coupon = await CouponService.get_by_code(db, payload.code)
    except StoreError as e:
        raise e.to_http()

    return CouponValidateResponse(
        coupon=CouponSummary.model_validate(coupon),
        discount_amount=result.discount_amount,
        final_amount=round(max(0.0, payload.order_amount - result.discount_amount), 2),
    )


@router.get("/available", response_model=list[CouponSummary])
async def available_coupons(
    identity: Identity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CouponService.available_coupons(db, identity.user_id)


@router.post(
    "/",
    response_model=CouponSummary,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_coupon(payload: CouponCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await CouponService.create_coupon(db, payload)
    except StoreError as e:
        raise e.to_http()
