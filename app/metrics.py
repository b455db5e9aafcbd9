from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "Total HTTP 5xx responses",
    ["method", "path", "status"],
)

# outcome: success | degraded | failed
PROVISIONING_RUNS = Counter(
    "provisioning_runs_total",
    "Tenant provisioning runs",
    ["role", "outcome"],
)
PROVISIONING_DURATION = Histogram(
    "provisioning_duration_seconds",
    "Tenant provisioning run duration",
    ["role"],
)
SIGNUP_TRANSITIONS = Counter(
    "signup_transitions_total",
    "Signup request status transitions",
    ["transition"],
)
