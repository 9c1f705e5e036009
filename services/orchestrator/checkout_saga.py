"""
Steps of order admission that touch shared state, in saga form.

    reserve_stock (one step per line, compensated by a release)
    persist_order (commit point, compensated by discarding the order)
    record_coupon_usage (only when a coupon applies)

The ctx dict carries the session, the prepared order parts, and what each
step produced so compensations know exactly what to undo.
"""
from functools import partial

import structlog

from shared.errors import InvalidCouponError
from services.coupon_service.engine import USAGE_LIMIT_REACHED
from services.coupon_service.repository import CouponRepository
from services.order_service.repository import OrderRepository
from services.product_service.ledger import StockLedger
from .saga import SagaOrchestrator

logger = structlog.get_logger(__name__)

# --- ACTIONS ---

async def reserve_item(index: int, ctx: dict):
    item = ctx["line_items"][index]
    mutation = await StockLedger.reserve(ctx["db"], item.product_id, item.quantity)
    ctx["reservations"][index] = mutation

async def persist_order(ctx: dict):
    order = ctx["build_order"]()
    await OrderRepository.create_order(ctx["db"], order)
    ctx["order"] = order
    ctx["order_id"] = order.id

async def record_coupon_usage(ctx: dict):
    coupon = ctx["coupon"]
    used_count = await CouponRepository.claim_usage(
        ctx["db"], coupon["id"], ctx["user_id"], ctx["order_id"], ctx["discount_amount"]
    )
    if used_count is None:
        # Another order took the last use between evaluation and now
        raise InvalidCouponError(coupon["code"], USAGE_LIMIT_REACHED, "Coupon usage limit has been reached")
    ctx["coupon_used_count"] = used_count


# --- COMPENSATIONS (Rollbacks) ---

async def _clean_session(ctx: dict):
    # A failed statement leaves the session unusable until rolled back
    await ctx["db"].rollback()

async def release_item(index: int, ctx: dict):
    await _clean_session(ctx)
    mutation = ctx["reservations"].pop(index, None)
    if mutation is None:
        return
    await StockLedger.release(ctx["db"], mutation.product_id, ctx["line_items"][index].quantity)

async def discard_persisted_order(ctx: dict):
    # The checkout failed, so the order was never placed: no row, no history
    await _clean_session(ctx)
    order_id = ctx.pop("order_id", None)
    if order_id is None:
        return
    ctx.pop("order", None)
    await OrderRepository.delete_order(ctx["db"], order_id)
    logger.info("order_admission_rolled_back", order_id=order_id)


# --- BUILDER FACTORY ---

def build_checkout_saga(ctx: dict) -> SagaOrchestrator:
    saga = SagaOrchestrator("checkout")
    # One product at a time, so a shortfall only has to undo what came before it
    for index in range(len(ctx["line_items"])):
        saga.add_step("reserve_stock", partial(reserve_item, index), partial(release_item, index))
    saga.add_step("persist_order", persist_order, discard_persisted_order)
    if ctx.get("coupon"):
        saga.add_step("record_coupon_usage", record_coupon_usage, None) # Last step, nothing after it to undo
    return saga
