"""
Module: celery_app.

But: Initialiser l'instance Celery du worker de re-scrape et charger la config runtime.

Notes:
- Broker et backend viennent des settings; aucun conteneur n'est construit à l'import.
- Les métriques des tâches sont branchées via `bind_celery_signals`.
"""

from celery import Celery

from crosskb.core.settings import get_settings
from crosskb.infra.monitoring.celery_exporter import bind_celery_signals

_settings = get_settings()

celery_app = Celery(
    "crosskb",
    broker=_settings.CELERY_BROKER_URL,
    backend=_settings.CELERY_RESULT_BACKEND,
    include=["crosskb.tasks.refresh_tasks"],
)
# Load configuration from module (retries, timeouts, acks)
celery_app.config_from_object("crosskb.app.celeryconfig")
celery_app.conf.task_routes = {"crosskb.tasks.*": {"queue": "refresh"}}

bind_celery_signals()

__all__ = ["celery_app"]
