"""
Tests pour le monitoring Celery.

Ce module teste les métriques Prometheus alimentées par les signaux des tâches de re-scrape.
"""

from __future__ import annotations

from prometheus_client import generate_latest

from crosskb.infra.monitoring.celery_exporter import (
    TASK_SUCCESS,
    bind_celery_signals,
    on_task_failure,
    on_task_postrun,
    on_task_prerun,
    on_task_retry,
)

TASK = "crosskb.tasks.refresh_web_source"


def test_celery_metrics_increment_and_runtime() -> None:
    before = TASK_SUCCESS.labels(task=TASK)._value.get()
    on_task_prerun("t1")
    on_task_postrun("t1", TASK, "SUCCESS")
    assert TASK_SUCCESS.labels(task=TASK)._value.get() == before + 1
    content = generate_latest()
    assert b"celery_task_runtime_seconds_count" in content

    on_task_prerun("t2")
    on_task_failure(TASK)
    on_task_retry(TASK)
    on_task_postrun("t2", TASK, "FAILURE")
    text = generate_latest()
    assert b"celery_task_failure_total" in text
    assert b"celery_task_retry_total" in text
    assert TASK_SUCCESS.labels(task=TASK)._value.get() == before + 1


def test_celery_app_binds_signals_once() -> None:
    """Importer l'app Celery branche les signaux; un second bind est sans effet."""
    from crosskb.app.celery_app import celery_app

    bind_celery_signals()
    bind_celery_signals()
    assert celery_app.main == "crosskb"
    assert "crosskb.tasks.*" in celery_app.conf.task_routes
