"""Engine and session factory for the ledger database.

Engines are built on first use, one per database URL, so a DATABASE_URL set
after import (migrations, tests) is honoured.
"""

from __future__ import annotations

from collections.abc import Iterator
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from shopledger.core.config import get_settings
from shopledger.core.logging import get_logger

log = get_logger("shopledger.db")


@lru_cache(maxsize=8)
def _engine(url: str, echo: bool) -> Engine:
    engine = create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        echo=echo,
    )
    log.info("db_engine_created", extra={"dialect": engine.dialect.name})
    return engine


def get_engine(url: str | None = None) -> Engine:
    """Shared engine for ``url`` (default: Settings.database_url)."""
    settings = get_settings()
    return _engine(url or settings.database_url, settings.database_echo)


def session_factory(url: str | None = None) -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(url), autoflush=False, autocommit=False)


def get_db(url: str | None = None) -> Iterator[Session]:
    """Yield a session on the configured database; closed when the caller is done."""
    db = session_factory(url)()
    try:
        yield db
    finally:
        db.close()
