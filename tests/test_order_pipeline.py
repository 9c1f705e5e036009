import asyncio

from sqlalchemy import func, select, update

from shared.config.database import AsyncSessionLocal
from shared.errors import InsufficientStockError, InvalidCouponError, InvalidError, NotFoundError
from services.coupon_service.repository import CouponRepository
from services.order_service.models import Order
from services.orchestrator.pipeline import OrderPipeline
from services.product_service.models import Product
from services.realtime_service.bus import ADMIN_TOPIC, Subscriber, product_topic, user_topic
from services.realtime_service import events

from conftest import fetch_coupon, fetch_product, order_request


async def order_count() -> int:
    async with AsyncSessionLocal() as session:
        return (await session.execute(select(func.count(Order.id)))).scalar_one()


async def test_order_is_priced_from_snapshots(db, pipeline, make_product):
    mug = await make_product(name="Mug", price=12.5, stock=10)
    pot = await make_product(name="Pot", price=30.0, stock=10)

    outcome = await pipeline.create_order(db, 1, order_request((mug.id, 2), (pot.id, 1)))

    order = outcome.unwrap()
    assert order.subtotal == 55.0
    assert order.total_amount == order.subtotal + order.tax_amount + order.shipping_amount - order.discount_amount
    assert order.order_status == "pending"
    assert order.payment_status == "pending"
    assert order.order_number.startswith("ORD-")
    assert order.billing_address == order.shipping_address
    assert [(i.name, i.price, i.quantity) for i in order.items] == [("Mug", 12.5, 2), ("Pot", 30.0, 1)]
    assert (await fetch_product(mug.id)).stock == 8
    assert (await fetch_product(pot.id)).stock == 9


async def test_later_price_changes_do_not_touch_the_order(db, pipeline, make_product):
    product = await make_product(price=20.0)
    order = (await pipeline.create_order(db, 1, order_request((product.id, 1)))).unwrap()

    async with AsyncSessionLocal() as session:
        await session.execute(update(Product).where(Product.id == product.id).values(price=99.0))
        await session.commit()
        stored = await session.get(Order, order.id)
        assert stored.items[0].price == 20.0
        assert stored.subtotal == 20.0


async def test_shortfall_releases_earlier_lines(db, pipeline, make_product):
    first = await make_product(stock=5)
    second = await make_product(name="Rare", stock=1)

    outcome = await pipeline.create_order(db, 1, order_request((first.id, 2), (second.id, 3)))

    assert not outcome.ok
    assert isinstance(outcome.error, InsufficientStockError)
    assert outcome.error.product_id == second.id
    assert (await fetch_product(first.id)).stock == 5
    assert (await fetch_product(second.id)).stock == 1
    assert await order_count() == 0


async def test_missing_and_inactive_products(db, pipeline, make_product):
    hidden = await make_product(name="Hidden", is_active=False)

    missing = await pipeline.create_order(db, 1, order_request((999, 1)))
    inactive = await pipeline.create_order(db, 1, order_request((hidden.id, 1)))

    assert isinstance(missing.error, NotFoundError)
    assert isinstance(inactive.error, InvalidError)
    assert "Hidden" in inactive.error.message


async def test_last_unit_goes_to_exactly_one_order(pipeline, make_product):
    product = await make_product(stock=1)

    async def place(user_id):
        async with AsyncSessionLocal() as session:
            return await pipeline.create_order(session, user_id, order_request((product.id, 1)))

    outcomes = await asyncio.gather(place(1), place(2))

    assert sorted(o.ok for o in outcomes) == [False, True]
    [failed] = [o for o in outcomes if not o.ok]
    assert isinstance(failed.error, InsufficientStockError)
    assert (await fetch_product(product.id)).stock == 0
    assert await order_count() == 1


async def test_coupon_discount(db, pipeline, make_product, make_coupon):
    product = await make_product(price=300.0)
    await make_coupon(minimum_order_amount=50, maximum_discount_amount=20)

    order = (await pipeline.create_order(db, 1, order_request((product.id, 1), coupon_code="save10"))).unwrap()

    assert order.discount_amount == 20
    assert order.total_amount == 280
    assert order.coupon == {"code": "SAVE10", "discount_type": "percentage", "discount_value": 10}
    coupon = await fetch_coupon("SAVE10")
    assert coupon.used_count == 1
    assert [(u.user_id, u.order_id, u.discount_amount) for u in coupon.usages] == [(1, order.id, 20)]


async def test_coupon_below_minimum_rejects_the_order(db, pipeline, make_product, make_coupon):
    product = await make_product(price=40.0, stock=3)
    await make_coupon(minimum_order_amount=50)

    outcome = await pipeline.create_order(db, 1, order_request((product.id, 1), coupon_code="SAVE10"))

    assert isinstance(outcome.error, InvalidCouponError)
    assert outcome.error.reason == "below_minimum_order"
    assert (await fetch_product(product.id)).stock == 3
    assert (await fetch_coupon("SAVE10")).used_count == 0


async def test_unknown_coupon(db, pipeline, make_product):
    product = await make_product()

    outcome = await pipeline.create_order(db, 1, order_request((product.id, 1), coupon_code="NOPE"))

    assert isinstance(outcome.error, NotFoundError)
    assert (await fetch_product(product.id)).stock == 10


async def test_per_user_coupon_limit(db, pipeline, make_product, make_coupon):
    product = await make_product(price=100.0)
    await make_coupon(usage_limit_per_user=1)

    first = await pipeline.create_order(db, 1, order_request((product.id, 1), coupon_code="SAVE10"))
    second = await pipeline.create_order(db, 1, order_request((product.id, 1), coupon_code="SAVE10"))
    other_user = await pipeline.create_order(db, 2, order_request((product.id, 1), coupon_code="SAVE10"))

    assert first.ok and other_user.ok
    assert second.error.reason == "user_limit_reached"
    assert (await fetch_coupon("SAVE10")).used_count == 2
    assert (await fetch_product(product.id)).stock == 8


async def test_last_coupon_use_goes_to_exactly_one_order(pipeline, make_product, make_coupon):
    product = await make_product(price=100.0, stock=10)
    await make_coupon(usage_limit=1)

    async def place(user_id):
        async with AsyncSessionLocal() as session:
            return await pipeline.create_order(
                session, user_id, order_request((product.id, 1), coupon_code="SAVE10")
            )

    outcomes = await asyncio.gather(place(1), place(2))

    assert sorted(o.ok for o in outcomes) == [False, True]
    [failed] = [o for o in outcomes if not o.ok]
    assert isinstance(failed.error, InvalidCouponError)
    assert failed.error.reason == "usage_limit_reached"
    assert (await fetch_coupon("SAVE10")).used_count == 1
    # the losing order's units went back, whichever step it lost at
    assert (await fetch_product(product.id)).stock == 9
    assert await order_count() == 1


async def test_lost_coupon_claim_leaves_no_order_behind(db, pipeline, make_product, make_coupon, monkeypatch):
    product = await make_product(price=100.0, stock=5)
    await make_coupon(code="LIMITED")
    await make_coupon(code="WELCOME", first_time_customers_only=True)

    async def exhausted(*args, **kwargs):
        return None

    monkeypatch.setattr(CouponRepository, "claim_usage", staticmethod(exhausted))
    failed = await pipeline.create_order(db, 7, order_request((product.id, 1), coupon_code="LIMITED"))
    monkeypatch.undo()

    assert isinstance(failed.error, InvalidCouponError)
    assert failed.error.reason == "usage_limit_reached"
    assert await order_count() == 0
    assert (await fetch_product(product.id)).stock == 5

    retry = await pipeline.create_order(db, 7, order_request((product.id, 1), coupon_code="WELCOME"))

    assert retry.ok
    assert retry.order.coupon["code"] == "WELCOME"


async def test_first_time_coupon(db, pipeline, make_product, make_coupon):
    product = await make_product(price=100.0)
    await make_coupon(code="WELCOME", first_time_customers_only=True)

    first = await pipeline.create_order(db, 5, order_request((product.id, 1), coupon_code="WELCOME"))
    again = await pipeline.create_order(db, 5, order_request((product.id, 1), coupon_code="WELCOME"))

    assert first.ok
    assert again.error.reason == "first_time_only"


async def test_events_follow_admission(db, bus, pipeline, make_product):
    product = await make_product(stock=12, low_stock_threshold=10)
    admin, watcher = Subscriber(), Subscriber()
    bus.subscribe(ADMIN_TOPIC, admin)
    bus.subscribe(product_topic(product.id), watcher)

    order = (await pipeline.create_order(db, 3, order_request((product.id, 5)))).unwrap()
    await pipeline.create_order(db, 3, order_request((product.id, 3)))

    admin_events = admin.drain()
    assert [e.type for e in admin_events] == [
        events.NEW_ORDER, events.LOW_STOCK_ALERT, events.STOCK_UPDATE, events.NEW_ORDER, events.STOCK_UPDATE,
    ]
    assert admin_events[0].payload["orderId"] == order.id
    assert admin_events[0].payload["itemCount"] == 1
    assert admin_events[1].payload == {"productId": product.id, "name": product.name, "stock": 7, "threshold": 10}
    assert admin_events[2].payload == {
        "productId": product.id, "name": product.name, "stock": 7, "previousStock": 12, "stockChange": -5,
    }
    assert admin_events[4].payload["stockChange"] == -3

    stock_events = watcher.drain()
    assert [e.payload["stock"] for e in stock_events] == [7, 4]
    assert all(e.payload["lowStock"] for e in stock_events)


async def test_rejected_order_publishes_nothing(db, bus, pipeline, make_product):
    product = await make_product(stock=1)
    admin, watcher = Subscriber(), Subscriber()
    bus.subscribe(ADMIN_TOPIC, admin)
    bus.subscribe(product_topic(product.id), watcher)

    await pipeline.create_order(db, 3, order_request((product.id, 2)))

    assert admin.drain() == []
    assert watcher.drain() == []


async def test_status_update_notifies_owner(db, bus, pipeline, make_product):
    product = await make_product()
    order = (await pipeline.create_order(db, 4, order_request((product.id, 1)))).unwrap()
    owner = Subscriber()
    bus.subscribe(user_topic(4), owner)

    outcome = await pipeline.update_order_status(
        db, order.id, "confirmed", actor="admin:1", tracking_number="TRK1"
    )

    updated = outcome.unwrap()
    assert updated.order_status == "confirmed"
    assert updated.tracking_number == "TRK1"
    assert updated.status_history[-1].actor == "admin:1"
    [event] = owner.drain()
    assert event.type == events.ORDER_UPDATE
    assert (event.payload["oldStatus"], event.payload["newStatus"]) == ("pending", "confirmed")


async def test_invalid_status_update(db, bus, pipeline, make_product):
    product = await make_product()
    order = (await pipeline.create_order(db, 4, order_request((product.id, 1)))).unwrap()
    owner = Subscriber()
    bus.subscribe(user_topic(4), owner)

    outcome = await pipeline.update_order_status(db, order.id, "delivered", actor="admin:1")

    assert outcome.error.kind == "invalid_transition"
    assert owner.drain() == []
    async with AsyncSessionLocal() as session:
        stored = await session.get(Order, order.id)
        assert stored.order_status == "pending"
        assert len(stored.status_history) == 1


async def test_status_update_for_missing_order(db, pipeline):
    outcome = await pipeline.update_order_status(db, 12345, "confirmed", actor="admin:1")

    assert isinstance(outcome.error, NotFoundError)


async def test_cancellation_restocks_and_keeps_coupon_usage(db, bus, pipeline, make_product, make_coupon):
    product = await make_product(price=100.0, stock=4)
    await make_coupon()
    order = (await pipeline.create_order(db, 4, order_request((product.id, 3), coupon_code="SAVE10"))).unwrap()
    watcher = Subscriber()
    bus.subscribe(product_topic(product.id), watcher)

    outcome = await pipeline.update_order_status(db, order.id, "cancelled", actor="user:4", note="changed my mind")

    cancelled = outcome.unwrap()
    assert cancelled.cancelled_at is not None
    assert cancelled.cancellation_reason == "changed my mind"
    assert (await fetch_product(product.id)).stock == 4
    assert [e.payload["stock"] for e in watcher.drain()] == [4]
    coupon = await fetch_coupon("SAVE10")
    assert coupon.used_count == 1
    assert len(coupon.usages) == 1


async def test_payment_update(db, bus, pipeline, make_product):
    product = await make_product()
    order = (await pipeline.create_order(db, 4, order_request((product.id, 1)))).unwrap()
    admin = Subscriber()
    bus.subscribe(ADMIN_TOPIC, admin)

    paid = (await pipeline.update_payment_status(db, order.id, "paid", actor="system", payment_id="pi_1")).unwrap()
    rejected = await pipeline.update_payment_status(db, order.id, "failed", actor="system")

    assert paid.payment_status == "paid"
    assert paid.payment_id == "pi_1"
    assert rejected.error.kind == "invalid_transition"
    assert [e.type for e in admin.drain()] == [events.PAYMENT_STATUS_CHANGE]


async def test_publishing_failure_does_not_fail_the_order(db, make_product):
    class BrokenBus:
        def publish(self, topic, event_type, payload):
            raise RuntimeError("bus down")

    product = await make_product()
    outcome = await OrderPipeline(BrokenBus()).create_order(db, 1, order_request((product.id, 1)))

    assert outcome.ok
    assert (await fetch_product(product.id)).stock == 9
