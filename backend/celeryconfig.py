"""
Celery configuration for the sample post-processing workers.

Loaded by `celery_app.config_from_object("celeryconfig")` in app/tasks/__init__.py.
Broker and result-backend URLs come from the same environment variables
as app.core.config and fall back to a local Redis.
"""

import os

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# Stage reports are plain dicts
task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Reprocessing tasks
# ═══════════════════════════════════════════════════════════

# Stages commit one by one, so a re-delivered task resumes on a
# partially processed table; every stage is safe to run twice.
task_acks_late = True
task_reject_on_worker_lost = True
worker_prefetch_multiplier = 1

# A full stage run over a few million rows
task_soft_time_limit = int(os.getenv("REPROCESS_SOFT_TIME_LIMIT", "1800"))
task_time_limit = task_soft_time_limit + 60

# Failed runs are not retried automatically; the caller re-submits
task_max_retries = 0

# Stage reports are polled shortly after the run
result_expires = 6 * 3600

# Row batches for large tables stay resident in the worker process
worker_max_tasks_per_child = 25

task_routes = {
    "app.tasks.processing_tasks.*": {"queue": "pipeline"},
}
task_default_queue = "default"
