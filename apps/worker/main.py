"""Celery worker and beat entrypoint.

Run the worker with:
    celery -A apps.worker.main:celery_app worker --loglevel=info
and the scheduler with:
    celery -A apps.worker.main:celery_app beat --loglevel=info

This module imports the Celery app and explicitly registers all tasks.
Task definitions are in the kivendi.tasks package - no autodiscovery.

Scheduling:
- expire_boosts runs every BOOST_EXPIRY_INTERVAL_S seconds from beat.
  Deployments that run beat should set RUN_BOOST_EXPIRY_LOOP=false on the
  API so the job is not doubled (running both is harmless, only wasteful).

Logging Convention:
- All task log entries include task_name and task_id
- Use configure_task_logging() at the start of each task to set up context
"""

from celery.signals import worker_process_init

from kivendi.celery import celery_app
from kivendi.logging import configure_logging, get_logger

# =============================================================================
# Task Registration (explicit imports - no autodiscovery)
# =============================================================================

from kivendi.tasks import expire_boosts_task  # noqa: F401

# =============================================================================
# Worker Lifecycle
# =============================================================================


@worker_process_init.connect
def setup_worker_logging(**kwargs):
    """Configure structlog when a worker process starts.

    Worker logs use the same JSON structured format as the API, with
    task_name and task_id bound per task.
    """
    configure_logging()
    logger = get_logger(__name__)
    logger.info("celery_worker_started")


# Export celery_app for Celery to find
__all__ = ["celery_app"]
