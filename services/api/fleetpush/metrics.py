"""Prometheus metric definitions for FleetPush.

Single source of truth for all custom metrics. Import from here in API and Celery code.
"""

from prometheus_client import Counter, Histogram

# --- Celery task metrics ---

celery_task_total = Counter(
    "fleetpush_celery_task_total",
    "Total Celery tasks executed",
    ["task_name", "status"],
)

celery_task_duration_seconds = Histogram(
    "fleetpush_celery_task_duration_seconds",
    "Celery task execution duration in seconds",
    ["task_name"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# --- Business metrics ---

token_registrations_total = Counter(
    "fleetpush_token_registrations_total",
    "Token registrations by result",
    ["result"],
)

token_unregistrations_total = Counter(
    "fleetpush_token_unregistrations_total",
    "Token unregistration requests by whether anything was removed",
    ["removed"],
)

push_deliveries_total = Counter(
    "fleetpush_push_deliveries_total",
    "Per-token push deliveries by status",
    ["status"],
)

invalid_tokens_pruned_total = Counter(
    "fleetpush_invalid_tokens_pruned_total",
    "Tokens removed after the push gateway reported them invalid or unregistered",
)

tracking_events_total = Counter(
    "fleetpush_tracking_events_total",
    "Traccar events received by type and outcome",
    ["event_type", "outcome"],
)
