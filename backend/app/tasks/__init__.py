"""
Celery application factory.
"""

from celery import Celery
from celery.signals import worker_process_init

from app.core.logging import setup_logging

celery_app = Celery("sample_automation")
celery_app.config_from_object("celeryconfig")

# Auto-discover tasks in these modules
celery_app.autodiscover_tasks([
    "app.tasks.processing_tasks",
])


@worker_process_init.connect
def _configure_worker_logging(**_kwargs) -> None:
    setup_logging()
