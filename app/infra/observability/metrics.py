from prometheus_client import Counter, Histogram, make_asgi_app

# Route label is the route template (e.g. /api/v1/files/info), never the raw path
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

# outcome is "success" or "error"
STORAGE_OPERATIONS = Counter(
    "storage_operations_total",
    "Object storage calls issued by the file service",
    ["operation", "outcome"],
)

STORAGE_LATENCY = Histogram(
    "storage_operation_duration_seconds",
    "Object storage call latency in seconds",
    ["operation"],
)

metrics_app = make_asgi_app()
