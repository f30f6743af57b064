"""Order number allocation.

Numbers look like ``NOWIHT-1001``. The high-water mark lives in a dedicated
``OrderCounter`` row advanced with a compare-and-swap update, so two
concurrent checkouts can never compute the same next number. The row is
seeded from the most recently created order the first time a prefix is used.
"""

from __future__ import annotations

import time
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from storefront_orders.core.config import get_settings
from storefront_orders.core.errors import PersistenceError
from storefront_orders.core.logging import get_logger
from storefront_orders.models.base import Order, OrderCounter
from storefront_orders.services.concurrency import CasConflict, run_with_retry

logger = get_logger("numbering")


def format_order_number(prefix: str, value: int) -> str:
    return f"{prefix}-{value:04d}"


def parse_suffix(order_number: str) -> Optional[int]:
    _, _, suffix = order_number.rpartition("-")
    if not suffix.isdigit():
        return None
    return int(suffix)


def fallback_order_number(prefix: str) -> str:
    """Timestamp-derived number used when the counter is unavailable.

    Not guaranteed to be unique; the unique constraint on
    ``Order.order_number`` catches collisions.
    """

    return f"{prefix}-{str(int(time.time() * 1000))[-6:]}"


def _seed_value(db: Session, prefix: str, start: int) -> int:
    last = db.exec(
        select(Order.order_number)
        .where(Order.order_number.like(f"{prefix}-%"))
        .order_by(Order.created_at.desc())
        .limit(1)
    ).first()
    if last is not None:
        suffix = parse_suffix(last)
        if suffix is not None:
            return suffix
    return start - 1


def _advance(db: Session, prefix: str, start: int) -> int:
    current = db.exec(select(OrderCounter.value).where(OrderCounter.name == prefix)).first()
    if current is None:
        value = _seed_value(db, prefix, start) + 1
        db.add(OrderCounter(name=prefix, value=value))
        try:
            db.commit()
        except IntegrityError as exc:
            # Another request created the counter row first.
            raise CasConflict(prefix) from exc
        return value

    result = db.exec(
        update(OrderCounter)
        .where(OrderCounter.name == prefix, OrderCounter.value == current)
        .values(value=current + 1)
    )
    if result.rowcount != 1:
        raise CasConflict(prefix)
    db.commit()
    return current + 1


def next_order_number(
    db: Session,
    *,
    prefix: Optional[str] = None,
    start: Optional[int] = None,
    attempts: Optional[int] = None,
) -> str:
    """Allocate the next order number.

    The counter advance commits on its own, so a number handed out is never
    handed out again even when the order insert that follows fails; gaps are
    possible. Must run before the caller adds anything else to the session.
    Any storage failure degrades to :func:`fallback_order_number` instead of
    blocking checkout.
    """

    settings = get_settings()
    prefix = prefix or settings.order_number_prefix
    start = start or settings.order_number_start

    try:
        value = run_with_retry(
            db,
            lambda: _advance(db, prefix, start),
            attempts=attempts or settings.cas_attempts,
            operation="allocate_order_number",
        )
    except (SQLAlchemyError, PersistenceError) as exc:
        db.rollback()
        number = fallback_order_number(prefix)
        logger.warning(
            "order number allocation degraded, using fallback",
            extra={"degraded": True, "order_number": number, "error": str(exc)},
        )
        return number
    return format_order_number(prefix, value)
