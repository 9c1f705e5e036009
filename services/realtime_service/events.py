"""
Publishers for the three topic families.

The bus is always passed in; nothing here reaches for a process-wide
emitter. Publishing is best effort: a failure is logged and swallowed so
that it can never decide the outcome of the operation that produced it.
"""
import structlog

from .bus import ADMIN_TOPIC, EventBus, product_topic, user_topic

logger = structlog.get_logger(__name__)

STOCK_UPDATED = "stock_updated"
STOCK_UPDATE = "stock_update"  # admin feed flavour, carries the delta
LOW_STOCK_ALERT = "low_stock_alert"
NEW_ORDER = "new_order"
ORDER_UPDATE = "order_update"
PAYMENT_UPDATE = "payment_update"
ORDER_STATUS_CHANGE = "order_status_change"
PAYMENT_STATUS_CHANGE = "payment_status_change"


def _safe_publish(bus: EventBus, topic: str, event_type: str, payload: dict) -> int:
    try:
        return bus.publish(topic, event_type, payload)
    except Exception:
        logger.exception("event_publish_failed", topic=topic, type=event_type)
        return 0


def stock_payload(mutation) -> dict:
    return {
        "productId": mutation.product_id,
        "stock": mutation.new_stock,
        "isInStock": mutation.is_in_stock,
        "lowStock": mutation.low_stock,
    }


def order_update_payload(order, old_status: str, new_status: str) -> dict:
    return {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "oldStatus": old_status,
        "newStatus": new_status,
        "totalAmount": order.total_amount,
    }


def publish_stock_change(bus: EventBus, mutation):
    _safe_publish(bus, product_topic(mutation.product_id), STOCK_UPDATED, stock_payload(mutation))

    if mutation.crossed_low_stock:
        _safe_publish(bus, ADMIN_TOPIC, LOW_STOCK_ALERT, {
            "productId": mutation.product_id,
            "name": mutation.name,
            "stock": mutation.new_stock,
            "threshold": mutation.threshold,
        })

    _safe_publish(bus, ADMIN_TOPIC, STOCK_UPDATE, {
        "productId": mutation.product_id,
        "name": mutation.name,
        "stock": mutation.new_stock,
        "previousStock": mutation.old_stock,
        "stockChange": mutation.new_stock - mutation.old_stock,
    })


def publish_new_order(bus: EventBus, order):
    _safe_publish(bus, ADMIN_TOPIC, NEW_ORDER, {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "totalAmount": order.total_amount,
        "itemCount": len(order.items),
        "userId": order.user_id,
        "status": order.order_status,
    })


def publish_order_status_change(bus: EventBus, order, old_status: str, new_status: str):
    payload = order_update_payload(order, old_status, new_status)
    _safe_publish(bus, user_topic(order.user_id), ORDER_UPDATE, payload)
    _safe_publish(bus, ADMIN_TOPIC, ORDER_STATUS_CHANGE, {**payload, "userId": order.user_id})


def publish_payment_status_change(bus: EventBus, order, old_status: str, new_status: str):
    payload = order_update_payload(order, old_status, new_status)
    _safe_publish(bus, user_topic(order.user_id), PAYMENT_UPDATE, payload)
    _safe_publish(bus, ADMIN_TOPIC, PAYMENT_STATUS_CHANGE, {**payload, "userId": order.user_id})
