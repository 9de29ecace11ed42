# Overview: Store handle, transactional unit of work and retry policy shared by every service.

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from ..extensions import db
from ..validation import PersistenceError

logger = logging.getLogger(__name__)


class StoreHandle:
    """
    Explicit handle on the persistent store.

    Services receive the handle as an argument instead of reaching for a
    module-level connection. Restoring a database is done with swap(): a fresh
    engine is built and verified first, then the handle's references are
    replaced under a lock, so every component holding the handle sees the new
    store on its next unit of work.
    """

    def __init__(self, engine: Engine, *, retry_attempts: int = 3):
        self._lock = threading.RLock()
        self.retry_attempts = retry_attempts
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "StoreHandle":
        return cls(build_engine(url), **kwargs)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def is_sqlite(self) -> bool:
        return self._engine.dialect.name == "sqlite"

    def ensure_schema(self) -> None:
        """Apply the current schema (idempotent)."""
        db.metadata.create_all(self._engine)

    def session(self) -> Session:
        with self._lock:
            return self._session_factory()

    @contextmanager
    def transaction(self):
        """
        One atomic unit of work.

        SQLite has no row locks, so the unit opens with BEGIN IMMEDIATE and
        holds the database write lock from its first read. Other databases
        rely on lock_for_update() on the product rows being withdrawn.
        """
        session = self.session()
        try:
            if self.is_sqlite:
                session.execute(text("BEGIN IMMEDIATE"))
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def reader(self):
        """
        Read-only session; nothing is committed.

        close() detaches loaded rows without expiring them, so results stay
        readable after the block. The pool rolls the connection back on return.
        """
        session = self.session()
        try:
            yield session
        finally:
            session.close()

    def swap(self, url: str) -> Engine:
        """
        Point the handle at another database.

        The new engine is created and its schema applied before the swap, so a
        bad target leaves the current store in place. Returns the old engine
        after disposing it.
        """
        new_engine = build_engine(url)
        try:
            db.metadata.create_all(new_engine)
        except SQLAlchemyError as exc:
            new_engine.dispose()
            raise PersistenceError(f"Cannot open replacement store: {exc}") from exc

        with self._lock:
            old_engine = self._engine
            self._engine = new_engine
            self._session_factory = sessionmaker(bind=new_engine, expire_on_commit=False)

        old_engine.dispose()
        logger.info("Store swapped to %s", new_engine.url.render_as_string(hide_password=True))
        return old_engine


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; StoreHandle.transaction()
    covers it with BEGIN IMMEDIATE instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). func must open its own transaction so
    each attempt starts clean.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying unit of work after %s (attempt %d)", type(exc).__name__, attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_transaction(store: StoreHandle, func, *, backoff_base: float = 0.1):
    """
    Run func(session) inside one atomic unit, with retry.

    Domain errors raised by func propagate unchanged after rollback; store
    failures surface as PersistenceError.
    """
    def _op():
        with store.transaction() as session:
            return func(session)

    try:
        return run_with_retry(_op, attempts=store.retry_attempts, backoff_base=backoff_base)
    except SQLAlchemyError as exc:
        logger.error("Unit of work aborted: %s", exc)
        raise PersistenceError(str(exc)) from exc
