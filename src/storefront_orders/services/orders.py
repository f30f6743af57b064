"""Order lifecycle: creation, the status state machine and order reads.

This module is the only writer of ``Order.status``. Stock and alert side
effects of an order are best-effort: they are logged on failure and never
undo an order that was already persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from storefront_orders.core.config import get_settings
from storefront_orders.core.errors import (
    InsufficientStockError,
    InvalidCouponError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ReturnWindowExpiredError,
    StorefrontError,
)
from storefront_orders.core.logging import get_logger
from storefront_orders.models.base import Order, OrderItem, OrderStatus, PaymentStatus, Product, as_utc, utcnow
from storefront_orders.schemas.order import OrderCreate, OrderUpdate
from storefront_orders.services import coupons, ledger, numbering, pricing
from storefront_orders.services.store_settings import PricingRules, get_pricing_rules

logger = get_logger("orders")

ORDER_PERSIST_ATTEMPTS = 3

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURN_REQUESTED}),
    OrderStatus.RETURN_REQUESTED: frozenset({OrderStatus.REFUNDED}),
}

# Orders in these states give their stock back.
_RELEASING = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}
_EXCLUDED_FROM_REVENUE = (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value)


@dataclass(frozen=True, slots=True)
class OrderStats:
    """Raw totals over ALL orders; revenue includes cancelled and refunded."""

    total_orders: int
    total_revenue: Decimal
    pending: int
    processing: int
    shipped: int
    delivered: int


@dataclass(frozen=True, slots=True)
class DashboardRevenue:
    """Revenue the admin dashboard shows: paid orders that were not cancelled or refunded."""

    total_revenue: Decimal
    paid_orders: int
    active_orders: int
    pending_orders: int


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


def _append_note(order: Order, note: Optional[str]) -> None:
    if not note:
        return
    order.notes = f"{order.notes}\n{note}" if order.notes else note


def _side_effect(db: Session, order: Order, step: str, action: Callable[[Session, Order], Any]) -> None:
    try:
        action(db, order)
    except (SQLAlchemyError, StorefrontError):
        db.rollback()
        logger.exception(
            "order side effect failed",
            extra={"order_number": order.order_number, "step": step},
        )


# ---- creation ----


def _snapshot_lines(payload: OrderCreate, products: dict[str, Product]) -> list[dict[str, Any]]:
    snapshots = []
    for line in payload.items:
        product = products[line.product_id]
        unit_price = pricing.money(product.price)
        snapshots.append(
            {
                "product_id": product.id,
                "product_name": product.name,
                "product_image": product.image or "",
                "product_sku": product.sku or "",
                "size": line.size,
                "color": line.color,
                "quantity": line.quantity,
                "unit_price": unit_price,
                "line_total": pricing.line_total(unit_price, line.quantity),
            }
        )
    return snapshots


def _persist(
    db: Session,
    payload: OrderCreate,
    totals: pricing.Totals,
    snapshots: list[dict[str, Any]],
    coupon: Optional[coupons.CouponQuote] = None,
) -> Order:
    last_error: Optional[Exception] = None
    for _ in range(ORDER_PERSIST_ATTEMPTS):
        order_number = numbering.next_order_number(db)
        order = Order(
            order_number=order_number,
            customer_email=str(payload.customer_email),
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            shipping_address=payload.shipping_address.model_dump(),
            subtotal=totals.subtotal,
            shipping_cost=totals.shipping_cost,
            tax=totals.tax,
            discount=totals.discount,
            coupon_code=coupon.code if coupon else None,
            total=totals.total,
            status=OrderStatus.PENDING.value,
            payment_method=payload.payment_method,
            payment_status=PaymentStatus.PENDING.value,
            notes=payload.notes,
        )
        try:
            db.add(order)
            db.flush()
            for snapshot in snapshots:
                db.add(OrderItem(order_id=order.id, **snapshot))
            if coupon is not None:
                coupons.claim_use(db, coupon.code)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            last_error = exc
            logger.warning("order number collision, retrying", extra={"order_number": order_number})
            continue
        except InvalidCouponError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError("Could not persist order") from exc
        db.refresh(order)
        return order
    raise PersistenceError("Could not allocate a unique order number") from last_error


def create_order(db: Session, payload: OrderCreate, rules: Optional[PricingRules] = None) -> Order:
    """Create a pending order priced from current product data.

    Unknown product ids are dropped from the order. Prices are locked at
    this moment. Any discount comes from a validated coupon, whose use is
    counted in the same transaction as the header and line snapshots.
    """

    rules = rules or get_pricing_rules(db)
    requested_ids = {line.product_id for line in payload.items}
    products = {
        product.id: product
        for product in db.exec(select(Product).where(Product.id.in_(requested_ids))).all()
    }
    dropped = sorted(requested_ids - products.keys())
    if dropped:
        logger.info("dropping unknown products from order", extra={"product_ids": dropped})
    if not products:
        raise NotFoundError("Products", ", ".join(dropped))

    resolved = payload.model_copy(
        update={"items": [line for line in payload.items if line.product_id in products]}
    )
    check = ledger.validate_cart(db, resolved.items)
    if not check.valid:
        raise InsufficientStockError(check.errors)

    snapshots = _snapshot_lines(resolved, products)
    subtotal = sum((snapshot["line_total"] for snapshot in snapshots), Decimal("0.00"))
    coupon = coupons.validate_coupon(db, resolved.coupon_code, subtotal) if resolved.coupon_code else None
    totals = pricing.calculate(
        subtotal,
        coupon.discount if coupon else 0,
        tax_rate=rules.tax_rate,
        shipping_flat=0 if coupon and coupon.free_shipping else rules.shipping_flat,
        free_shipping_threshold=rules.free_shipping_threshold,
    )

    order = _persist(db, resolved, totals, snapshots, coupon)
    logger.info(
        "order created",
        extra={"order_number": order.order_number, "total": str(order.total), "lines": len(snapshots)},
    )

    if get_settings().stock_decrement == "order":
        _side_effect(db, order, "decrement_stock", ledger.record_order_purchase)
        db.refresh(order)
    return order


# ---- reads ----


def get_order(db: Session, key: str) -> Order:
    """Look an order up by id or by its order number."""

    order = db.get(Order, key)
    if order is None:
        order = db.exec(select(Order).where(Order.order_number == key)).first()
    if order is None:
        raise NotFoundError("Order", key)
    return order


def list_order_items(db: Session, order_id: str) -> list[OrderItem]:
    return list(db.exec(select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)).all())


def list_orders(
    db: Session,
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> list[Order]:
    query = select(Order)
    if status:
        query = query.where(Order.status == status.value)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(Order.order_number).like(pattern),
                func.lower(Order.customer_email).like(pattern),
                func.lower(Order.customer_name).like(pattern),
            )
        )
    query = query.order_by(Order.created_at.desc(), Order.id)
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return list(db.exec(query).all())


def order_stats(db: Session) -> OrderStats:
    rows = db.exec(
        select(Order.status, func.count(Order.id), func.coalesce(func.sum(Order.total), 0)).group_by(
            Order.status
        )
    ).all()
    counts = {status: count for status, count, _ in rows}
    revenue = sum((pricing.to_decimal(amount) for _, _, amount in rows), Decimal("0"))
    return OrderStats(
        total_orders=sum(counts.values()),
        total_revenue=pricing.money(revenue),
        pending=counts.get(OrderStatus.PENDING.value, 0),
        processing=counts.get(OrderStatus.PROCESSING.value, 0),
        shipped=counts.get(OrderStatus.SHIPPED.value, 0),
        delivered=counts.get(OrderStatus.DELIVERED.value, 0),
    )


def dashboard_revenue(db: Session) -> DashboardRevenue:
    active = Order.status.not_in(_EXCLUDED_FROM_REVENUE)
    revenue, paid = db.exec(
        select(func.coalesce(func.sum(Order.total), 0), func.count(Order.id)).where(
            active, Order.payment_status == PaymentStatus.PAID.value
        )
    ).one()
    active_orders = db.exec(select(func.count(Order.id)).where(active)).one()
    pending_orders = db.exec(
        select(func.count(Order.id)).where(Order.status == OrderStatus.PENDING.value)
    ).one()
    return DashboardRevenue(
        total_revenue=pricing.money(revenue),
        paid_orders=int(paid),
        active_orders=int(active_orders),
        pending_orders=int(pending_orders),
    )


# ---- status changes ----


def update_status(db: Session, order_id: str, status: OrderStatus, note: Optional[str] = None) -> Order:
    order = get_order(db, order_id)
    current = OrderStatus(order.status)
    if not can_transition(current, status):
        raise InvalidTransitionError(current.value, status.value)

    now = utcnow()
    order.status = status.value
    order.updated_at = now
    if status is OrderStatus.CANCELLED:
        order.cancelled_at = now
    elif status is OrderStatus.DELIVERED:
        order.delivered_at = now
    elif status is OrderStatus.REFUNDED:
        order.payment_status = PaymentStatus.REFUNDED.value
    _append_note(order, note)
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info(
        "order status changed",
        extra={"order_number": order.order_number, "from": current.value, "to": status.value},
    )

    if status in _RELEASING:
        _side_effect(db, order, "release_stock", ledger.release_order_stock)
        db.refresh(order)
    return order


def update_order(db: Session, order_id: str, payload: OrderUpdate) -> Order:
    """Write only the supplied fields; ``updated_at`` is always touched."""

    order = get_order(db, order_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if isinstance(value, Enum):
            value = value.value
        setattr(order, key, value)
    order.updated_at = utcnow()
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def add_tracking(db: Session, order_id: str, tracking_number: str) -> Order:
    """Set the tracking number and move the order to ``shipped``.

    Allowed from ``processing`` and, to correct a tracking number, from
    ``shipped`` itself.
    """

    order = get_order(db, order_id)
    current = OrderStatus(order.status)
    if current is not OrderStatus.SHIPPED and not can_transition(current, OrderStatus.SHIPPED):
        raise InvalidTransitionError(current.value, OrderStatus.SHIPPED.value)

    order.tracking_number = tracking_number
    order.status = OrderStatus.SHIPPED.value
    order.updated_at = utcnow()
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("tracking added", extra={"order_number": order.order_number, "tracking_number": tracking_number})
    return order


def delete_order(db: Session, order_id: str) -> Order:
    """Soft delete: cancel the order. Rows are never removed."""

    order = get_order(db, order_id)
    if order.status == OrderStatus.CANCELLED.value:
        return order
    return update_status(db, order.id, OrderStatus.CANCELLED)


def cancel_order(db: Session, order_id: str, reason: Optional[str] = None) -> Order:
    note = f"Cancelled by customer: {reason}" if reason else "Cancelled by customer"
    return update_status(db, order_id, OrderStatus.CANCELLED, note=note)


def request_return(
    db: Session,
    order_id: str,
    reason: str,
    description: Optional[str] = None,
    window_days: Optional[int] = None,
) -> Order:
    order = get_order(db, order_id)
    current = OrderStatus(order.status)
    if not can_transition(current, OrderStatus.RETURN_REQUESTED):
        raise InvalidTransitionError(current.value, OrderStatus.RETURN_REQUESTED.value)

    window = window_days if window_days is not None else get_settings().return_window_days
    delivered = as_utc(order.delivered_at or order.updated_at)
    if (utcnow() - delivered).days > window:
        raise ReturnWindowExpiredError(f"Return window of {window} days has expired")

    note = f"Return requested: {reason}. Description: {description or 'N/A'}"
    return update_status(db, order.id, OrderStatus.RETURN_REQUESTED, note=note)
