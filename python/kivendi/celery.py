"""Celery application configuration.

Central configuration for Celery used by the worker, the beat scheduler
and any process that enqueues tasks.

Usage:
    from kivendi.celery import celery_app

    # Enqueue task:
    celery_app.send_task("expire_boosts")

    # Or import task directly:
    from kivendi.tasks import expire_boosts_task
    expire_boosts_task.apply_async(queue="default")
"""

from celery import Celery

from kivendi.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery("kivendi")

# Configure from settings
celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

# Task configuration
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

# Default queue
celery_app.conf.task_default_queue = "default"

# Periodic jobs (run with `celery -A apps.worker.main:celery_app beat`)
celery_app.conf.beat_schedule = {
    "expire-boosts": {
        "task": "expire_boosts",
        "schedule": float(settings.boost_expiry_interval_s),
    },
}

# For testing: allow eager mode (synchronous execution)
celery_app.conf.task_always_eager = False
