import pytest
from sqlmodel import Session

from storefront_orders.core.errors import NotFoundError
from storefront_orders.models import AlertType, StockLevel
from storefront_orders.services import alerts


def test_create_alert_returns_existing_open_alert(session: Session, make_product) -> None:
    product = make_product(stock_quantity=2)

    first = alerts.create_alert(session, product.id, AlertType.LOW_STOCK)
    second = alerts.create_alert(session, product.id, AlertType.LOW_STOCK)

    assert first.id == second.id
    assert first.quantity_at_alert == 2
    assert len(alerts.list_open_alerts(session)) == 1


def test_create_alert_for_unknown_product(session: Session) -> None:
    with pytest.raises(NotFoundError):
        alerts.create_alert(session, "missing", AlertType.RESTOCK_NEEDED)


def test_resolve_alert_is_idempotent(session: Session, make_product) -> None:
    product = make_product()
    alert = alerts.create_alert(session, product.id, AlertType.RESTOCK_NEEDED, note="supplier call")

    resolved = alerts.resolve_alert(session, alert.id, note="ordered", resolved_by="ops")
    resolved_at = resolved.resolved_at
    again = alerts.resolve_alert(session, alert.id, note="ignored")

    assert resolved.is_resolved is True
    assert resolved.resolved_by == "ops"
    assert again.resolved_at == resolved_at
    assert again.note == "ordered"
    # a new alert of the same type may be opened once the old one is resolved
    reopened = alerts.create_alert(session, product.id, AlertType.RESTOCK_NEEDED)
    assert reopened.id != alert.id


def test_stock_level(make_product) -> None:
    assert alerts.stock_level(make_product(stock_quantity=0)) is StockLevel.OUT_OF_STOCK
    assert alerts.stock_level(make_product(stock_quantity=5, stock_alert_level=5)) is StockLevel.LOW_STOCK
    assert alerts.stock_level(make_product(stock_quantity=6, stock_alert_level=5)) is StockLevel.IN_STOCK
    assert alerts.stock_level(make_product(stock_quantity=0, track_inventory=False)) is StockLevel.IN_STOCK


def test_evaluate_product_moves_between_alert_types(session: Session, make_product) -> None:
    product = make_product(stock_quantity=3)

    low = alerts.evaluate_product(session, product)
    assert low is not None
    assert low.alert_type == AlertType.LOW_STOCK.value

    product.stock_quantity = 0
    session.add(product)
    session.commit()
    out = alerts.evaluate_product(session, product)

    assert out is not None
    assert out.alert_type == AlertType.OUT_OF_STOCK.value
    session.refresh(low)
    assert low.is_resolved is True
    assert low.note == "Resolved automatically: stock at 0"


def test_evaluate_product_leaves_restock_needed_alone(session: Session, make_product) -> None:
    product = make_product(stock_quantity=50)
    manual = alerts.create_alert(session, product.id, AlertType.RESTOCK_NEEDED)

    assert alerts.evaluate_product(session, product) is None

    session.refresh(manual)
    assert manual.is_resolved is False
