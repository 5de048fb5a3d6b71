"""Dialect-aware INSERT ... ON CONFLICT construction.

PostgreSQL and SQLite both support ON CONFLICT, but SQLAlchemy exposes it
through dialect-specific insert() constructs.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def conflict_insert(db: Session, model):
    """Return an insert() for model that supports on_conflict_* clauses.

    Raises:
        NotImplementedError: The bound dialect has no ON CONFLICT support.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"ON CONFLICT upsert not supported for dialect {dialect!r}")
