"""Prometheus metric definitions for Brain Calendar.

Single source of truth for all custom metrics. Import from here in API and Celery code.
"""

from prometheus_client import Counter, Histogram

# --- Celery task metrics ---

celery_task_total = Counter(
    "brain_calendar_celery_task_total",
    "Total Celery tasks executed",
    ["task_name", "status"],
)

celery_task_duration_seconds = Histogram(
    "brain_calendar_celery_task_duration_seconds",
    "Celery task execution duration in seconds",
    ["task_name"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

# --- Business metrics ---

proposals_total = Counter(
    "brain_calendar_proposals_total",
    "Reschedule proposal lifecycle events by action",
    ["action"],
)

reschedule_cycles_total = Counter(
    "brain_calendar_reschedule_cycles_total",
    "Per-user orchestration cycles by outcome",
    ["outcome"],
)

reschedule_cycle_duration_seconds = Histogram(
    "brain_calendar_reschedule_cycle_duration_seconds",
    "Duration of a per-user orchestration cycle in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

ingested_events_total = Counter(
    "brain_calendar_ingested_events_total",
    "Provider events processed by the ingestion boundary, by result status",
    ["status"],
)

approval_requests_total = Counter(
    "brain_calendar_approval_requests_total",
    "Approval requests queued in the notifications outbox, by channel",
    ["channel"],
)
