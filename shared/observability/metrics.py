from prometheus_client import Counter, Histogram, Gauge

# Business Metrics
ecomm_orders_total = Counter(
    "ecomm_orders_total",
    "Total order creations processed",
    ["status"] # Labels: 'success', or the failure kind ('insufficient_stock', ...)
)

ecomm_order_duration_seconds = Histogram(
    "ecomm_order_duration_seconds",
    "Order creation duration in seconds"
)

ecomm_saga_compensation_total = Counter(
    "ecomm_saga_compensation_total",
    "Total saga compensations triggered",
    ["step_name"] # Labels: 'reserve_stock', 'persist_order', etc.
)

ecomm_stock_reservations_total = Counter(
    "ecomm_stock_reservations_total",
    "Stock ledger mutations",
    ["result"] # Labels: 'reserved', 'insufficient', 'released'
)

ecomm_coupon_evaluations_total = Counter(
    "ecomm_coupon_evaluations_total",
    "Coupon eligibility evaluations",
    ["outcome"] # Labels: 'eligible', 'ineligible', 'below_minimum_order'
)

ecomm_events_published_total = Counter(
    "ecomm_events_published_total",
    "Events published on the event bus",
    ["family"] # Labels: 'product', 'user', 'admin'
)

ecomm_active_subscribers = Gauge(
    "ecomm_active_subscribers",
    "Number of currently connected event subscribers"
)
