import re
from datetime import timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from storefront_orders.core.errors import (
    InsufficientStockError,
    InvalidCouponError,
    InvalidTransitionError,
    NotFoundError,
    ReturnWindowExpiredError,
)
from storefront_orders.models import ChangeType, CouponType, Order, OrderStatus, PaymentStatus, StockHistory
from storefront_orders.models.base import as_utc, utcnow
from storefront_orders.schemas.order import OrderCreate, OrderUpdate
from storefront_orders.services import coupons, ledger, numbering, orders


def _payload(*lines, **overrides) -> OrderCreate:
    data = {
        "customer_email": "jane@example.com",
        "customer_name": "Jane Doe",
        "shipping_address": {
            "address": "1 Main St",
            "city": "Springfield",
            "zip_code": "12345",
            "country": "US",
        },
        "items": [{"product_id": product_id, "quantity": quantity} for product_id, quantity in lines],
    }
    data.update(overrides)
    return OrderCreate(**data)


def test_create_order_prices_and_decrements_stock(session: Session, make_product) -> None:
    product = make_product(stock_quantity=10)

    order = orders.create_order(session, _payload((product.id, 2)))

    assert order.order_number == "NOWIHT-1001"
    assert order.status == OrderStatus.PENDING.value
    assert order.subtotal == Decimal("100.00")
    assert order.shipping_cost == Decimal("0.00")
    assert order.tax == Decimal("10.00")
    assert order.total == Decimal("110.00")
    items = orders.list_order_items(session, order.id)
    assert [(item.product_name, item.quantity, item.line_total) for item in items] == [
        ("Linen Shirt", 2, Decimal("100.00"))
    ]
    session.refresh(product)
    assert product.stock_quantity == 8
    purchase = session.exec(select(StockHistory).where(StockHistory.order_id == order.id)).one()
    assert purchase.change_type == ChangeType.PURCHASE.value
    assert purchase.delta == -2


def test_unknown_products_are_dropped(session: Session, make_product) -> None:
    product = make_product()

    order = orders.create_order(session, _payload((product.id, 1), ("missing", 3)))

    items = orders.list_order_items(session, order.id)
    assert [item.product_id for item in items] == [product.id]
    assert order.subtotal == Decimal("50.00")


def test_order_with_only_unknown_products_is_rejected(session: Session) -> None:
    with pytest.raises(NotFoundError):
        orders.create_order(session, _payload(("missing", 1)))


def test_insufficient_stock_lists_each_line(session: Session, make_product) -> None:
    first = make_product(name="A", stock_quantity=1)
    second = make_product(name="B", stock_quantity=0)

    with pytest.raises(InsufficientStockError) as excinfo:
        orders.create_order(session, _payload((first.id, 2), (second.id, 1)))

    assert len(excinfo.value.errors) == 2
    assert orders.list_orders(session) == []


def test_coupon_discount_is_applied_and_counted(session: Session, make_product) -> None:
    product = make_product()
    coupons.create_coupon(session, code="save10", coupon_type=CouponType.PERCENTAGE, value=Decimal("10"))

    order = orders.create_order(session, _payload((product.id, 2), coupon_code="SAVE10"))

    assert order.coupon_code == "SAVE10"
    assert order.discount == Decimal("10.00")
    assert order.tax == Decimal("9.00")
    assert order.total == Decimal("99.00")
    assert coupons.get_coupon(session, "save10").uses_count == 1


def test_free_shipping_coupon_waives_shipping(session: Session, make_product) -> None:
    product = make_product()
    coupons.create_coupon(session, code="SHIPFREE", coupon_type=CouponType.FREE_SHIPPING)

    order = orders.create_order(session, _payload((product.id, 1), coupon_code="shipfree"))

    assert order.discount == Decimal("0.00")
    assert order.shipping_cost == Decimal("0.00")
    assert order.total == Decimal("55.00")


def test_used_up_coupon_blocks_checkout(session: Session, make_product) -> None:
    product = make_product()
    coupons.create_coupon(session, code="ONCE", coupon_type=CouponType.FIXED, value=Decimal("5"), max_uses=1)
    orders.create_order(session, _payload((product.id, 1), coupon_code="ONCE"))

    with pytest.raises(InvalidCouponError):
        orders.create_order(session, _payload((product.id, 1), coupon_code="ONCE"))

    assert len(orders.list_orders(session)) == 1
    assert coupons.get_coupon(session, "ONCE").uses_count == 1


def test_failed_stock_decrement_keeps_the_order(session: Session, make_product, monkeypatch) -> None:
    product = make_product(stock_quantity=10)

    def broken(db, order):
        raise OperationalError("UPDATE product", {}, Exception("database is locked"))

    monkeypatch.setattr(ledger, "record_order_purchase", broken)

    order = orders.create_order(session, _payload((product.id, 2)))

    assert orders.get_order(session, "NOWIHT-1001").id == order.id
    assert len(orders.list_order_items(session, order.id)) == 1
    session.refresh(product)
    assert product.stock_quantity == 10


def test_failed_stock_release_keeps_the_cancellation(session: Session, make_product, monkeypatch) -> None:
    product = make_product(stock_quantity=10)
    order = orders.create_order(session, _payload((product.id, 2)))

    def broken(db, order):
        raise OperationalError("UPDATE product", {}, Exception("database is locked"))

    monkeypatch.setattr(ledger, "release_order_stock", broken)

    cancelled = orders.cancel_order(session, order.id)

    assert cancelled.status == OrderStatus.CANCELLED.value
    assert orders.get_order(session, order.id).status == OrderStatus.CANCELLED.value
    session.refresh(product)
    assert product.stock_quantity == 8


def test_order_created_with_fallback_number_when_counter_fails(
    session: Session, make_product, monkeypatch
) -> None:
    product = make_product(stock_quantity=10)

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE ordercounter", {}, Exception("database is locked"))

    monkeypatch.setattr(numbering, "_advance", broken)

    order = orders.create_order(session, _payload((product.id, 1)))

    assert re.fullmatch(r"NOWIHT-\d{6}", order.order_number)
    assert orders.get_order(session, order.order_number).id == order.id
    session.refresh(product)
    assert product.stock_quantity == 9


def test_full_lifecycle_through_refund(session: Session, make_product) -> None:
    product = make_product(stock_quantity=10)
    order = orders.create_order(session, _payload((product.id, 2)))

    orders.update_status(session, order.id, OrderStatus.PROCESSING)
    shipped = orders.add_tracking(session, order.id, "1Z999")
    assert shipped.status == OrderStatus.SHIPPED.value
    assert shipped.tracking_number == "1Z999"

    delivered = orders.update_status(session, order.id, OrderStatus.DELIVERED)
    assert delivered.delivered_at is not None

    returned = orders.request_return(session, order.id, "Too small", "Sleeves too short")
    assert returned.status == OrderStatus.RETURN_REQUESTED.value
    assert "Return requested: Too small. Description: Sleeves too short" in returned.notes

    refunded = orders.update_status(session, order.id, OrderStatus.REFUNDED)
    assert refunded.payment_status == PaymentStatus.REFUNDED.value
    session.refresh(product)
    assert product.stock_quantity == 10


def test_terminal_status_rejects_transition(session: Session, make_product) -> None:
    order = orders.create_order(session, _payload((make_product().id, 1)))
    orders.cancel_order(session, order.id, "changed my mind")

    with pytest.raises(InvalidTransitionError) as excinfo:
        orders.update_status(session, order.id, OrderStatus.DELIVERED)

    assert excinfo.value.current == "cancelled"
    assert excinfo.value.requested == "delivered"


def test_tracking_requires_processing(session: Session, make_product) -> None:
    order = orders.create_order(session, _payload((make_product().id, 1)))

    with pytest.raises(InvalidTransitionError):
        orders.add_tracking(session, order.id, "1Z999")


def test_delete_is_a_soft_cancel(session: Session, make_product) -> None:
    product = make_product(stock_quantity=5)
    order = orders.create_order(session, _payload((product.id, 3)))

    cancelled = orders.delete_order(session, order.order_number)
    again = orders.delete_order(session, order.id)

    assert cancelled.status == OrderStatus.CANCELLED.value
    assert cancelled.cancelled_at is not None
    assert again.cancelled_at == cancelled.cancelled_at
    assert orders.get_order(session, order.id).id == order.id
    session.refresh(product)
    assert product.stock_quantity == 5
    releases = session.exec(
        select(StockHistory).where(
            StockHistory.order_id == order.id, StockHistory.change_type == ChangeType.RETURN.value
        )
    ).all()
    assert len(releases) == 1


def test_return_window_expired(session: Session, make_product) -> None:
    order = orders.create_order(session, _payload((make_product().id, 1)))
    orders.update_status(session, order.id, OrderStatus.PROCESSING)
    orders.update_status(session, order.id, OrderStatus.SHIPPED)
    delivered = orders.update_status(session, order.id, OrderStatus.DELIVERED)
    delivered.delivered_at = utcnow() - timedelta(days=31)
    session.add(delivered)
    session.commit()

    with pytest.raises(ReturnWindowExpiredError):
        orders.request_return(session, order.id, "Late")


def test_stats_and_dashboard_revenue_differ(session: Session, make_product) -> None:
    product = make_product(stock_quantity=10)
    kept = orders.create_order(session, _payload((product.id, 2)))
    dropped = orders.create_order(session, _payload((product.id, 1)))
    orders.update_order(session, kept.id, OrderUpdate(payment_status=PaymentStatus.PAID))
    orders.update_order(session, dropped.id, OrderUpdate(payment_status=PaymentStatus.PAID))
    orders.cancel_order(session, dropped.id)

    stats = orders.order_stats(session)
    dashboard = orders.dashboard_revenue(session)

    assert stats.total_orders == 2
    assert stats.pending == 1
    assert stats.total_revenue == Decimal("175.00")
    assert dashboard.total_revenue == Decimal("110.00")
    assert dashboard.paid_orders == 1
    assert dashboard.active_orders == 1


def test_list_orders_filters(session: Session, make_product) -> None:
    product = make_product(stock_quantity=10)
    first = orders.create_order(session, _payload((product.id, 1)))
    second = orders.create_order(
        session, _payload((product.id, 1), customer_email="sam@example.com", customer_name="Sam")
    )
    orders.update_status(session, second.id, OrderStatus.PROCESSING)

    assert [order.id for order in orders.list_orders(session, search="SAM@")] == [second.id]
    assert [order.id for order in orders.list_orders(session, status=OrderStatus.PENDING)] == [first.id]
    assert orders.get_order(session, first.order_number).id == first.id


def test_timestamps_are_stored_as_utc(session: Session, make_product) -> None:
    before = utcnow()
    order = orders.create_order(session, _payload((make_product().id, 1)))
    session.expire_all()

    stored = session.get(Order, order.id)
    created = as_utc(stored.created_at)

    assert before.tzinfo is timezone.utc
    assert created.utcoffset() == timedelta(0)
    assert abs(created - before) < timedelta(minutes=1)


def test_list_orders_pages_with_offset(session: Session, make_product) -> None:
    product = make_product(stock_quantity=10)
    created = [orders.create_order(session, _payload((product.id, 1))) for _ in range(3)]

    page = orders.list_orders(session, limit=2, offset=1)

    assert [order.id for order in page] == [created[1].id, created[0].id]
