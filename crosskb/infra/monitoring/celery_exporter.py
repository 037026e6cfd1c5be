# ============================================================
# Module : crosskb/infra/monitoring/celery_exporter.py
# Objet  : Métriques Prometheus des tâches Celery (re-scrape).
# ============================================================
"""Métriques Prometheus pour les tâches Celery.

Compteurs de succès/échec/retry et durées d'exécution des tâches de rafraîchissement, alimentés
par les signaux Celery.
"""

from __future__ import annotations

import threading
import time

from celery import signals
from prometheus_client import Counter, Histogram

TASK_SUCCESS = Counter("celery_task_success_total", "Tasks réussies", ["task"])
TASK_FAILURE = Counter("celery_task_failure_total", "Tasks échouées", ["task"])
TASK_RETRY = Counter("celery_task_retry_total", "Tasks en retry", ["task"])
TASK_RUNTIME_SECONDS = Histogram(
    "celery_task_runtime_seconds", "Durée d'exécution des tâches", ["task"]
)

_starts: dict[str, float] = {}
_bound = threading.Event()


def on_task_prerun(task_id: str) -> None:
    _starts[task_id] = time.monotonic()


def on_task_postrun(task_id: str, task_name: str, state: str) -> None:
    """Observe la durée et compte les succès."""
    start = _starts.pop(task_id, None)
    if start is not None:
        TASK_RUNTIME_SECONDS.labels(task=task_name).observe(max(0.0, time.monotonic() - start))
    if state.upper() == "SUCCESS":
        TASK_SUCCESS.labels(task=task_name).inc()


def on_task_failure(task_name: str) -> None:
    TASK_FAILURE.labels(task=task_name).inc()


def on_task_retry(task_name: str) -> None:
    TASK_RETRY.labels(task=task_name).inc()


def _task_name(sender) -> str:  # type: ignore[no-untyped-def]
    return getattr(sender, "name", None) or "unknown"


def bind_celery_signals() -> None:
    """Branche les handlers sur les signaux Celery (une seule fois par processus)."""
    if _bound.is_set():
        return
    _bound.set()

    @signals.task_prerun.connect(weak=False)
    def _pre(sender=None, task_id: str = "", **kw):  # type: ignore[no-untyped-def]
        on_task_prerun(task_id)

    @signals.task_postrun.connect(weak=False)
    def _post(  # type: ignore[no-untyped-def]
        sender=None, task_id: str = "", state: str = "", **kw
    ):
        on_task_postrun(task_id, _task_name(sender), state or "")

    @signals.task_failure.connect(weak=False)
    def _fail(sender=None, **kw):  # type: ignore[no-untyped-def]
        on_task_failure(_task_name(sender))

    @signals.task_retry.connect(weak=False)
    def _retry(sender=None, **kw):  # type: ignore[no-untyped-def]
        on_task_retry(_task_name(sender))
