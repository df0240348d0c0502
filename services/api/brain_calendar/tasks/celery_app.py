"""Celery application configuration."""

import time

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_failure, task_postrun, task_prerun, task_retry

from brain_calendar.config import get_settings
from brain_calendar.metrics import celery_task_duration_seconds, celery_task_total

settings = get_settings()

celery_app = Celery(
    "brain_calendar",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "brain_calendar.tasks.reschedule_tasks.run_reschedule_for_user": {"queue": "reschedule"},
        "brain_calendar.tasks.reschedule_tasks.*": {"queue": "default"},
    },
    beat_schedule={
        # Fan out one reschedule cycle per user with upcoming events
        "dispatch-reschedule-runs": {
            "task": "brain_calendar.tasks.reschedule_tasks.dispatch_reschedule_runs",
            "schedule": crontab(minute=f"*/{settings.reschedule_interval_minutes}"),
        },
        # Expire sent proposals nobody answered (every 15 min)
        "expire-stale-proposals": {
            "task": "brain_calendar.tasks.reschedule_tasks.expire_stale_proposals",
            "schedule": crontab(minute="*/15"),
        },
    },
)

celery_app.autodiscover_tasks(["brain_calendar.tasks"], related_name="reschedule_tasks")

_task_start_times: dict[str, float] = {}


def _setup_task_signals() -> None:
    """Record task counts and durations in Prometheus."""

    @task_prerun.connect(weak=False)
    def _on_prerun(task_id=None, **kwargs):
        _task_start_times[task_id] = time.monotonic()

    @task_postrun.connect(weak=False)
    def _on_postrun(task_id=None, task=None, state=None, **kwargs):
        started = _task_start_times.pop(task_id, None)
        name = task.name if task is not None else "unknown"
        if started is not None:
            celery_task_duration_seconds.labels(task_name=name).observe(time.monotonic() - started)
        if state == "SUCCESS":
            celery_task_total.labels(task_name=name, status="success").inc()

    @task_failure.connect(weak=False)
    def _on_failure(sender=None, **kwargs):
        name = sender.name if sender is not None else "unknown"
        celery_task_total.labels(task_name=name, status="failure").inc()

    @task_retry.connect(weak=False)
    def _on_retry(sender=None, **kwargs):
        name = sender.name if sender is not None else "unknown"
        celery_task_total.labels(task_name=name, status="retry").inc()


_setup_task_signals()
