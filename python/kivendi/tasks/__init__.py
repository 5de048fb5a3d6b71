"""Celery tasks for Kivendi.

Tasks are explicitly imported here to register them with Celery.
No autodiscovery - all tasks must be imported in this module.

Usage in worker:
    from kivendi.tasks import expire_boosts_task
"""

from kivendi.tasks.expire_boosts import expire_boosts_task, run_boost_expiry

__all__ = ["expire_boosts_task", "run_boost_expiry"]
