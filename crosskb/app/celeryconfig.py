"""Configuration centralisée Celery pour le re-scrape des sources web.

Politiques d'acquittement, timeouts et limites de connexion au broker. Les retries sont portés
par la tâche elle-même (`refresh_web_source`) selon le caractère réessayable de l'échec.
"""

# ============================================================
# Module : crosskb/app/celeryconfig.py
# Objet  : Configuration centralisée Celery (acks, timeouts).
# ============================================================

from __future__ import annotations

# Acks
task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1
task_time_limit = 300  # secondes
broker_pool_limit = 10

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]
result_expires = 3600
