from .setup import setup_observability, configure_logging
from .metrics import (
    ecomm_orders_total,
    ecomm_order_duration_seconds,
    ecomm_saga_compensation_total,
    ecomm_stock_reservations_total,
    ecomm_coupon_evaluations_total,
    ecomm_events_published_total,
    ecomm_active_subscribers
)
