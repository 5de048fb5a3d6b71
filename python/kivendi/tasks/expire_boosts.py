"""Boost expiration job.

Deactivates boosts whose end_date has passed and resynchronizes every
ad's is_boosted flag with its boost rows. Runs from Celery beat and, unless
RUN_BOOST_EXPIRY_LOOP is off, from a periodic loop inside the API process.
Both paths call run_boost_expiry(); the job is idempotent and safe to run
concurrently with purchases.
"""

from dataclasses import asdict

from kivendi.celery import celery_app
from kivendi.db.session import open_session
from kivendi.logging import clear_task_context, configure_task_logging, get_logger
from kivendi.services.boosts import expire_boosts

logger = get_logger(__name__)

TASK_NAME = "expire_boosts"


def run_boost_expiry(task_id: str | None = None) -> dict:
    """Run one expiration pass with its own session.

    Returns:
        Counts of deactivated boosts and ads whose flag changed.
    """
    configure_task_logging(task_name=TASK_NAME, task_id=task_id)
    try:
        with open_session() as db:
            result = expire_boosts(db)
        return asdict(result)
    finally:
        clear_task_context()


@celery_app.task(bind=True, max_retries=0, name=TASK_NAME)
def expire_boosts_task(self) -> dict:
    """Celery entry for the beat schedule."""
    return run_boost_expiry(task_id=self.request.id)
