"""Tests for Prometheus metrics definitions and Celery signal handlers."""

from unittest.mock import MagicMock

from celery.signals import task_failure, task_postrun, task_prerun, task_retry

from brain_calendar.metrics import (
    celery_task_duration_seconds,
    celery_task_total,
    ingested_events_total,
    proposals_total,
    reschedule_cycle_duration_seconds,
    reschedule_cycles_total,
)
from brain_calendar.tasks.celery_app import _task_start_times


def _task(name: str):
    task = MagicMock()
    task.name = name
    return task


class TestMetricDefinitions:
    """Verify all custom metrics are defined with correct types and labels."""

    def test_celery_task_total_labels(self):
        assert celery_task_total._type == "counter"
        assert celery_task_total._labelnames == ("task_name", "status")

    def test_celery_task_duration_labels(self):
        assert celery_task_duration_seconds._type == "histogram"
        assert celery_task_duration_seconds._labelnames == ("task_name",)

    def test_proposals_total(self):
        assert proposals_total._type == "counter"
        assert proposals_total._labelnames == ("action",)

    def test_reschedule_cycle_metrics(self):
        assert reschedule_cycles_total._labelnames == ("outcome",)
        assert reschedule_cycle_duration_seconds._type == "histogram"

    def test_ingested_events_total(self):
        assert ingested_events_total._labelnames == ("status",)


class TestCelerySignalHandlers:
    """Sending Celery signals updates task metrics."""

    def test_success_records_count_and_duration(self):
        task = _task("brain_calendar.tasks.test_success")
        counter = celery_task_total.labels(task_name=task.name, status="success")
        before = counter._value.get()

        task_prerun.send(sender=task, task_id="task-ok", task=task)
        assert "task-ok" in _task_start_times
        task_postrun.send(sender=task, task_id="task-ok", task=task, state="SUCCESS")

        assert counter._value.get() == before + 1
        assert "task-ok" not in _task_start_times

    def test_failure_increments_failure(self):
        task = _task("brain_calendar.tasks.test_failure")
        counter = celery_task_total.labels(task_name=task.name, status="failure")
        before = counter._value.get()

        task_failure.send(sender=task, task_id="task-bad", exception=RuntimeError("boom"))

        assert counter._value.get() == before + 1

    def test_retry_increments_retry(self):
        task = _task("brain_calendar.tasks.test_retry")
        counter = celery_task_total.labels(task_name=task.name, status="retry")
        before = counter._value.get()

        task_retry.send(sender=task, reason="later")

        assert counter._value.get() == before + 1

    def test_postrun_failure_state_not_counted_as_success(self):
        task = _task("brain_calendar.tasks.test_postrun_failure")
        counter = celery_task_total.labels(task_name=task.name, status="success")
        before = counter._value.get()

        task_prerun.send(sender=task, task_id="task-f", task=task)
        task_postrun.send(sender=task, task_id="task-f", task=task, state="FAILURE")

        assert counter._value.get() == before
