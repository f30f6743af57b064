"""Retry helpers for read-modify-write sequences that race with other requests."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import Session

from storefront_orders.core.errors import PersistenceError
from storefront_orders.core.logging import get_logger

logger = get_logger("concurrency")

T = TypeVar("T")


class CasConflict(Exception):
    """A compare-and-swap update matched no row: somebody else won the race."""


def run_with_retry(
    db: Session,
    func: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_base: float = 0.02,
    operation: str = "write",
) -> T:
    """Run *func*, rolling back and retrying on concurrency failures.

    Retries on lost compare-and-swap races, ``OperationalError`` (locks,
    deadlocks) and ``StaleDataError``. Raises ``PersistenceError`` once the
    attempts are used up.
    """

    for attempt in range(attempts):
        try:
            return func()
        except (CasConflict, OperationalError, StaleDataError) as exc:
            db.rollback()
            if attempt >= attempts - 1:
                logger.error(
                    "giving up after concurrency conflicts",
                    extra={"operation": operation, "attempts": attempts},
                )
                raise PersistenceError(f"{operation} failed after {attempts} attempts") from exc
            logger.warning(
                "concurrency conflict, retrying",
                extra={"operation": operation, "attempt": attempt + 1, "error": type(exc).__name__},
            )
            time.sleep(backoff_base * (2**attempt))
    raise PersistenceError(f"{operation} was not attempted")
