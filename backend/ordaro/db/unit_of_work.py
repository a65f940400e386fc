"""Unit of work for ledger mutations.

A ledger mutation runs as one all-or-nothing transaction while holding the
serialization slot of every ingredient it touches. Slots are process-wide
locks keyed by ingredient id; on PostgreSQL the rows are additionally read
``FOR UPDATE`` by the services so separate processes serialize too.
"""

import logging
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Dict, Hashable, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ordaro.core.config import settings
from ordaro.services.exceptions import TransactionTimeoutError

logger = logging.getLogger(__name__)


class IngredientLockRegistry:
    """Re-entrant locks keyed by ingredient id."""

    def __init__(self):
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def acquire_many(self, keys: Iterable[Hashable], timeout: float) -> Iterator[None]:
        """Hold every slot in ``keys`` for the duration of the block.

        Slots are taken in sorted order so two multi-ingredient operations
        can never wait on each other in a cycle.
        """
        ordered = sorted(set(keys))
        deadline = time.monotonic() + timeout
        acquired: List[threading.RLock] = []
        try:
            for key in ordered:
                lock = self.lock_for(key)
                remaining = max(deadline - time.monotonic(), 0)
                if not lock.acquire(timeout=remaining):
                    raise TransactionTimeoutError(
                        "Timed out waiting for the ingredient transaction slot",
                        {"ingredient_id": key, "max_wait_seconds": timeout},
                    )
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


ingredient_locks = IngredientLockRegistry()


def _apply_statement_timeouts(db: Session, max_wait: float, timeout: float) -> None:
    bind = db.get_bind()
    if bind.dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = {int(max_wait * 1000)}"))
        db.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))


@contextmanager
def unit_of_work(
    db: Session,
    lock_keys: Iterable[Hashable] = (),
    *,
    max_wait: Optional[float] = None,
    timeout: Optional[float] = None,
    registry: Optional[IngredientLockRegistry] = None,
) -> Iterator[Session]:
    """Run the enclosed reads/writes as one transaction.

    Commits only if the block finished inside ``timeout`` seconds; otherwise,
    or on any exception, everything written through ``db`` is rolled back.
    """
    max_wait = settings.transaction_max_wait_seconds if max_wait is None else max_wait
    timeout = settings.transaction_timeout_seconds if timeout is None else timeout
    registry = registry or ingredient_locks

    with registry.acquire_many(lock_keys, max_wait):
        started = time.monotonic()
        try:
            _apply_statement_timeouts(db, max_wait, timeout)
            yield db
            elapsed = time.monotonic() - started
            if elapsed > timeout:
                raise TransactionTimeoutError(
                    "Transaction exceeded its execution budget",
                    {"elapsed_seconds": round(elapsed, 3), "timeout_seconds": timeout},
                )
            db.commit()
        except OperationalError as e:
            db.rollback()
            logger.warning(f"Ledger transaction aborted by the database: {e.orig}")
            raise TransactionTimeoutError(
                "Database lock or statement timeout; retry the operation",
                {"timeout_seconds": timeout},
            ) from e
        except Exception:
            db.rollback()
            raise
