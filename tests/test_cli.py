from decimal import Decimal

from sqlmodel import Session
from typer.testing import CliRunner

from storefront_orders.cli import app
from storefront_orders.db.session import engine, init_db
from storefront_orders.models import Product

runner = CliRunner()


def _stored_product(stock_quantity: int) -> str:
    init_db()
    with Session(engine) as session:
        product = Product(name="Canvas Tote", price=Decimal("12.00"), stock_quantity=stock_quantity)
        session.add(product)
        session.commit()
        return product.id


def test_stock_status_prints_summary() -> None:
    result = runner.invoke(app, ["stock-status"])

    assert result.exit_code == 0, result.output
    assert "Inventory" in result.output
    assert "Open alerts:" in result.output


def test_restock_reports_new_quantity() -> None:
    product_id = _stored_product(stock_quantity=0)

    result = runner.invoke(app, ["restock", product_id, "5", "--note", "pallet 7"])

    assert result.exit_code == 0, result.output
    assert "Stock 0 -> 5" in result.output
    with Session(engine) as session:
        assert session.get(Product, product_id).stock_quantity == 5


def test_restock_unknown_product_fails() -> None:
    result = runner.invoke(app, ["restock", "missing", "5"])

    assert result.exit_code == 1
    assert "Product missing not found" in result.output


def test_restock_rejects_non_positive_quantity() -> None:
    result = runner.invoke(app, ["restock", "missing", "0"])

    assert result.exit_code != 0
