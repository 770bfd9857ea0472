from prometheus_client import Counter, Histogram, REGISTRY


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        return REGISTRY._names_to_collectors[name]


REQUESTS_TOTAL = get_or_create_metric(
    "campus_requests_total",
    "Total requests",
    Counter,
    labelnames=["endpoint", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "campus_request_latency_seconds",
    "Request latency",
    Histogram,
    labelnames=["endpoint"],
)

TASKS_CREATED_TOTAL = get_or_create_metric(
    "campus_tasks_created_total",
    "Tasks created, by source (manual or text)",
    Counter,
    labelnames=["source"],
)

LLM_FALLBACK_TOTAL = get_or_create_metric(
    "campus_llm_fallback_total",
    "Reasoning requests answered by a local fallback",
    Counter,
    labelnames=["capability"],
)

NOTIFICATIONS_SENT_TOTAL = get_or_create_metric(
    "campus_notifications_sent_total",
    "Notification emails delivered",
    Counter,
    labelnames=["kind"],
)
