# coursepay/metrics.py
from prometheus_client import Counter, Histogram, make_asgi_app

# Counters
orders_created = Counter("orders_created_total", "Orders persisted with a checkout link")
order_code_collisions = Counter(
    "order_code_collisions_total",
    "Order inserts that hit the unique order_code constraint and were retried",
)
order_errors = Counter("order_errors_total", "Order creation errors", ["type"])

settlements_total = Counter("settlements_total", "Orders settled into enrollment + wallet credit")
settlement_replays = Counter(
    "settlement_replays_total",
    "Webhook deliveries for orders that were already settled",
)
settlement_errors = Counter("settlement_errors_total", "Settlement errors", ["type"])

webhook_events = Counter("webhook_events_total", "Webhook deliveries by outcome", ["outcome"])

gateway_errors = Counter("gateway_errors_total", "Payment gateway call failures", ["operation"])

withdrawal_requests = Counter("withdrawal_requests_total", "Withdrawal requests that reserved funds")
withdrawal_reviews = Counter("withdrawal_reviews_total", "Admin transaction reviews", ["decision"])
review_conflicts = Counter(
    "review_conflicts_total",
    "Reviews rejected because the transaction was no longer PENDING",
)

# Latency
settlement_latency = Histogram("settlement_latency_seconds", "Settlement latency in seconds")
order_latency = Histogram("order_latency_seconds", "Order creation latency in seconds")

# ASGI app for /metrics
metrics_asgi_app = make_asgi_app()
