"""Low-stock and out-of-stock alerts derived from ledger state.

At most one unresolved alert of a given type exists per product: creation
returns the open alert when there is one, and a partial unique index on
``StockAlert`` backs the check up at the storage layer.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from storefront_orders.core.errors import NotFoundError
from storefront_orders.core.logging import get_logger
from storefront_orders.models.base import AlertType, Product, StockAlert, StockLevel, utcnow

logger = get_logger("alerts")

_THRESHOLD_ALERTS = {
    StockLevel.LOW_STOCK: AlertType.LOW_STOCK,
    StockLevel.OUT_OF_STOCK: AlertType.OUT_OF_STOCK,
}


def stock_level(product: Product) -> StockLevel:
    if not product.track_inventory:
        return StockLevel.IN_STOCK
    if product.stock_quantity <= 0:
        return StockLevel.OUT_OF_STOCK
    if product.stock_quantity <= product.stock_alert_level:
        return StockLevel.LOW_STOCK
    return StockLevel.IN_STOCK


def get_open_alert(db: Session, product_id: str, alert_type: AlertType) -> Optional[StockAlert]:
    return db.exec(
        select(StockAlert).where(
            StockAlert.product_id == product_id,
            StockAlert.alert_type == alert_type.value,
            StockAlert.is_resolved == False,  # noqa: E712
        )
    ).first()


def create_alert(
    db: Session, product_id: str, alert_type: AlertType, note: Optional[str] = None
) -> StockAlert:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)

    existing = get_open_alert(db, product_id, alert_type)
    if existing is not None:
        return existing

    alert = StockAlert(
        product_id=product_id,
        alert_type=alert_type.value,
        quantity_at_alert=product.stock_quantity,
        note=note,
    )
    db.add(alert)
    try:
        db.commit()
    except IntegrityError:
        # Lost the race against a concurrent insert of the same open alert.
        db.rollback()
        existing = get_open_alert(db, product_id, alert_type)
        if existing is None:
            raise
        return existing
    db.refresh(alert)
    logger.info(
        "stock alert opened",
        extra={"product_id": product_id, "alert_type": alert.alert_type, "quantity": alert.quantity_at_alert},
    )
    return alert


def _mark_resolved(alert: StockAlert, note: Optional[str], resolved_by: Optional[str]) -> None:
    alert.is_resolved = True
    alert.resolved_at = utcnow()
    alert.resolved_by = resolved_by
    if note is not None:
        alert.note = note


def resolve_alert(
    db: Session, alert_id: str, note: Optional[str] = None, resolved_by: Optional[str] = None
) -> StockAlert:
    alert = db.get(StockAlert, alert_id)
    if alert is None:
        raise NotFoundError("Alert", alert_id)
    if alert.is_resolved:
        return alert
    _mark_resolved(alert, note, resolved_by)
    db.add(alert)
    db.commit()
    db.refresh(alert)
    logger.info("stock alert resolved", extra={"alert_id": alert_id, "product_id": alert.product_id})
    return alert


def resolve_open_alerts(
    db: Session,
    product_id: str,
    alert_type: AlertType,
    note: Optional[str] = None,
    resolved_by: Optional[str] = None,
) -> int:
    """Resolve every open alert of *alert_type* for one product."""

    alerts = db.exec(
        select(StockAlert).where(
            StockAlert.product_id == product_id,
            StockAlert.alert_type == alert_type.value,
            StockAlert.is_resolved == False,  # noqa: E712
        )
    ).all()
    for alert in alerts:
        _mark_resolved(alert, note, resolved_by)
        db.add(alert)
    db.commit()
    return len(alerts)


def list_open_alerts(db: Session) -> list[tuple[StockAlert, Product]]:
    rows = db.exec(
        select(StockAlert, Product)
        .join(Product, Product.id == StockAlert.product_id)
        .where(StockAlert.is_resolved == False)  # noqa: E712
        .order_by(StockAlert.created_at.desc())
    ).all()
    return list(rows)


def evaluate_product(db: Session, product: Product) -> Optional[StockAlert]:
    """Open the alert matching the product's level and resolve the others.

    ``restock_needed`` alerts are raised by people and are left alone.
    """

    level = stock_level(product)
    wanted = _THRESHOLD_ALERTS.get(level)
    for alert_type in _THRESHOLD_ALERTS.values():
        if alert_type is wanted:
            continue
        if get_open_alert(db, product.id, alert_type) is not None:
            resolve_open_alerts(
                db,
                product.id,
                alert_type,
                note=f"Resolved automatically: stock at {product.stock_quantity}",
            )
    if wanted is None:
        return None
    return create_alert(db, product.id, wanted)
