"""Stock ledger: on-hand quantities plus an append-only history.

Every mutation is a compare-and-swap on ``Product.stock_quantity`` keyed by
product id and the previously observed quantity. The quantity change and its
``StockHistory`` row commit together. Alert re-evaluation runs afterwards as
a separate best-effort step, so alerts are eventually consistent with the
ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable, Optional, Protocol

from sqlalchemy import case, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from storefront_orders.core.config import get_settings
from storefront_orders.core.errors import NotFoundError, PersistenceError
from storefront_orders.core.logging import get_logger
from storefront_orders.models.base import (
    AlertType,
    ChangeType,
    Order,
    OrderItem,
    Product,
    StockAlert,
    StockHistory,
    utcnow,
)
from storefront_orders.services import alerts
from storefront_orders.services.concurrency import CasConflict, run_with_retry
from storefront_orders.services.pricing import money

logger = get_logger("ledger")

UNLIMITED_STOCK = -1


class CartLine(Protocol):
    product_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class Availability:
    product_id: str
    available: bool
    current_stock: int
    message: Optional[str] = None


@dataclass(slots=True)
class CartValidation:
    valid: bool
    errors: list[dict] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class StockStatus:
    total_products: int
    in_stock: int
    low_stock: int
    out_of_stock: int
    total_inventory_value: Decimal
    open_alert_count: int


# ---- reads ----


def get_stock_status(db: Session) -> StockStatus:
    tracked = Product.track_inventory == True  # noqa: E712
    out_expr = case((tracked & (Product.stock_quantity == 0), 1), else_=0)
    low_expr = case(
        (
            tracked
            & (Product.stock_quantity > 0)
            & (Product.stock_quantity <= Product.stock_alert_level),
            1,
        ),
        else_=0,
    )
    row = db.exec(
        select(
            func.count(Product.id),
            func.coalesce(func.sum(out_expr), 0),
            func.coalesce(func.sum(low_expr), 0),
            func.coalesce(func.sum(Product.stock_quantity * Product.price), 0),
        )
    ).one()
    total, out_of_stock, low_stock, value = row
    open_alerts = db.exec(
        select(func.count(StockAlert.id)).where(StockAlert.is_resolved == False)  # noqa: E712
    ).one()
    return StockStatus(
        total_products=int(total),
        in_stock=int(total) - int(out_of_stock) - int(low_stock),
        low_stock=int(low_stock),
        out_of_stock=int(out_of_stock),
        total_inventory_value=money(value),
        open_alert_count=int(open_alerts),
    )


def get_history(db: Session, product_id: Optional[str] = None, limit: int = 50) -> list[StockHistory]:
    query = select(StockHistory)
    if product_id:
        query = query.where(StockHistory.product_id == product_id)
    query = query.order_by(StockHistory.created_at.desc(), StockHistory.id.desc()).limit(limit)
    return list(db.exec(query).all())


def products_needing_restock(db: Session, threshold: Optional[int] = None) -> list[Product]:
    query = select(Product).where(Product.track_inventory == True)  # noqa: E712
    if threshold is not None:
        query = query.where(Product.stock_quantity <= threshold)
    else:
        query = query.where(Product.stock_quantity <= Product.stock_alert_level)
    return list(db.exec(query.order_by(Product.stock_quantity.asc())).all())


def check_availability(db: Session, product_id: str, requested_quantity: int) -> Availability:
    product = db.get(Product, product_id)
    if product is None:
        return Availability(product_id, False, 0, "Product not found")

    if not product.track_inventory:
        return Availability(product_id, True, UNLIMITED_STOCK)

    current = product.stock_quantity
    if current >= requested_quantity:
        return Availability(product_id, True, current)
    if product.allow_backorder:
        return Availability(
            product_id, True, current, f"Only {current} in stock. Rest will be backordered."
        )
    return Availability(product_id, False, current, f"Insufficient stock. Only {current} available.")


def validate_cart(db: Session, lines: Iterable[CartLine]) -> CartValidation:
    """Check every line and report all failures, not just the first."""

    errors = []
    for line in lines:
        check = check_availability(db, line.product_id, line.quantity)
        if not check.available:
            errors.append(
                {
                    "product_id": line.product_id,
                    "current_stock": check.current_stock,
                    "message": check.message or "Insufficient stock",
                }
            )
    return CartValidation(valid=not errors, errors=errors)


# ---- mutations ----


def _apply(
    db: Session,
    product_id: str,
    compute: Callable[[int], tuple[int, Optional[str]]],
    *,
    change_type: ChangeType,
    actor: Optional[str] = None,
    order_id: Optional[str] = None,
) -> StockHistory:
    def attempt() -> StockHistory:
        previous = db.exec(select(Product.stock_quantity).where(Product.id == product_id)).first()
        if previous is None:
            raise NotFoundError("Product", product_id)
        new_quantity, note = compute(previous)
        result = db.exec(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity == previous)
            .values(stock_quantity=new_quantity, updated_at=utcnow())
        )
        if result.rowcount != 1:
            raise CasConflict(product_id)
        entry = StockHistory(
            product_id=product_id,
            previous_quantity=previous,
            new_quantity=new_quantity,
            delta=new_quantity - previous,
            change_type=change_type.value,
            order_id=order_id,
            note=note,
            actor=actor,
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    entry = run_with_retry(
        db, attempt, attempts=get_settings().cas_attempts, operation=f"stock_{change_type.value}"
    )
    logger.info(
        "stock changed",
        extra={
            "product_id": product_id,
            "change_type": entry.change_type,
            "previous": entry.previous_quantity,
            "new": entry.new_quantity,
            "order_id": order_id,
        },
    )
    return entry


def _reevaluate_alerts(db: Session, product_id: str, restocked: bool = False) -> None:
    try:
        if restocked:
            alerts.resolve_open_alerts(db, product_id, AlertType.OUT_OF_STOCK, note="Resolved by restock")
        product = db.get(Product, product_id)
        if product is not None:
            db.refresh(product)
            alerts.evaluate_product(db, product)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("alert re-evaluation failed", extra={"product_id": product_id})


def set_quantity(
    db: Session,
    product_id: str,
    quantity: int,
    note: Optional[str] = None,
    actor: Optional[str] = None,
) -> StockHistory:
    if quantity < 0:
        raise ValueError("quantity must not be negative")
    entry = _apply(
        db,
        product_id,
        lambda previous: (quantity, note),
        change_type=ChangeType.ADJUSTMENT,
        actor=actor,
    )
    _reevaluate_alerts(db, product_id)
    return entry


def adjust_quantity(
    db: Session,
    product_id: str,
    delta: int,
    note: Optional[str] = None,
    actor: Optional[str] = None,
    *,
    change_type: ChangeType = ChangeType.ADJUSTMENT,
    order_id: Optional[str] = None,
) -> StockHistory:
    """Relative change clamped at zero.

    The history entry records the delta actually applied; when the request
    was clamped the note says so.
    """

    def compute(previous: int) -> tuple[int, Optional[str]]:
        target = previous + delta
        if target >= 0:
            return target, note
        clamped = f"requested {delta:+d}, clamped at zero"
        return 0, f"{note} ({clamped})" if note else clamped

    entry = _apply(db, product_id, compute, change_type=change_type, actor=actor, order_id=order_id)
    _reevaluate_alerts(db, product_id)
    return entry


def restock(
    db: Session,
    product_id: str,
    quantity: int,
    note: Optional[str] = None,
    actor: Optional[str] = None,
) -> StockHistory:
    if quantity <= 0:
        raise ValueError("restock quantity must be positive")
    entry = _apply(
        db,
        product_id,
        lambda previous: (previous + quantity, note or f"Restocked {quantity} units"),
        change_type=ChangeType.RESTOCK,
        actor=actor,
    )
    _reevaluate_alerts(db, product_id, restocked=True)
    return entry


def add_stock_note(db: Session, product_id: str, note: str, actor: Optional[str] = None) -> StockHistory:
    """Record an annotation as a zero-delta ``adjustment`` entry; stock is untouched."""

    if not note.strip():
        raise ValueError("note must not be empty")
    return _apply(
        db,
        product_id,
        lambda previous: (previous, note),
        change_type=ChangeType.ADJUSTMENT,
        actor=actor,
    )


def bulk_set_quantity(db: Session, updates: Iterable[tuple[str, int, Optional[str]]]) -> int:
    updated = 0
    for product_id, quantity, note in updates:
        try:
            set_quantity(db, product_id, quantity, note)
        except (NotFoundError, PersistenceError, ValueError) as exc:
            logger.warning("bulk update skipped product", extra={"product_id": product_id, "error": str(exc)})
            continue
        updated += 1
    logger.info("bulk update complete", extra={"updated": updated})
    return updated


def bulk_restock(db: Session, items: Iterable[tuple[str, int, Optional[str]]]) -> int:
    restocked = 0
    for product_id, quantity, note in items:
        try:
            restock(db, product_id, quantity, note)
        except (NotFoundError, PersistenceError, ValueError) as exc:
            logger.warning("bulk restock skipped product", extra={"product_id": product_id, "error": str(exc)})
            continue
        restocked += 1
    logger.info("bulk restock complete", extra={"restocked": restocked})
    return restocked


# ---- order integration ----


def _order_deltas(db: Session, order_id: str, product_id: str, change_type: ChangeType) -> Optional[int]:
    return db.exec(
        select(func.sum(StockHistory.delta)).where(
            StockHistory.order_id == order_id,
            StockHistory.product_id == product_id,
            StockHistory.change_type == change_type.value,
        )
    ).one()


def _ordered_quantities(db: Session, order: Order) -> dict[str, int]:
    items = db.exec(select(OrderItem).where(OrderItem.order_id == order.id)).all()
    quantities: dict[str, int] = {}
    for item in items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    return quantities


def record_order_purchase(db: Session, order: Order) -> list[StockHistory]:
    """Decrement stock for each product on *order*, once per product.

    A product that already has a purchase entry for this order is skipped, so
    retrying never double-decrements.
    """

    entries = []
    for product_id, quantity in _ordered_quantities(db, order).items():
        product = db.get(Product, product_id)
        if product is None or not product.track_inventory:
            continue
        if _order_deltas(db, order.id, product_id, ChangeType.PURCHASE) is not None:
            continue
        entries.append(
            adjust_quantity(
                db,
                product_id,
                -quantity,
                note=f"Order {order.order_number}",
                change_type=ChangeType.PURCHASE,
                order_id=order.id,
            )
        )
    return entries


def release_order_stock(db: Session, order: Order) -> list[StockHistory]:
    """Put back whatever *order* took from stock and has not returned yet."""

    entries = []
    for product_id in _ordered_quantities(db, order):
        taken = -(_order_deltas(db, order.id, product_id, ChangeType.PURCHASE) or 0)
        returned = _order_deltas(db, order.id, product_id, ChangeType.RETURN) or 0
        outstanding = taken - returned
        if outstanding <= 0 or db.get(Product, product_id) is None:
            continue
        entries.append(
            adjust_quantity(
                db,
                product_id,
                outstanding,
                note=f"Order {order.order_number} {order.status}",
                change_type=ChangeType.RETURN,
                order_id=order.id,
            )
        )
    return entries
