"""Database utilities shared by the ledgers."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run a block as one unit: commit on success, roll back on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def insert_ignore(db: Session, model: Any, values: dict[str, Any], conflict_column: str) -> int:
    """INSERT ... ON CONFLICT DO NOTHING keyed on one unique column.

    Returns:
        Number of rows inserted (0 when the key already exists)

    """
    # PostgreSQL and SQLite each ship their own ON CONFLICT construct
    if db.get_bind().dialect.name == "postgresql":
        stmt = postgresql.insert(model).values(**values)
    else:
        stmt = sqlite.insert(model).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=[conflict_column])

    result = db.execute(stmt)
    return max(result.rowcount or 0, 0)
