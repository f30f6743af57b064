"""Command line interface for operators."""

from __future__ import annotations

from typing import Optional

import typer
import uvicorn
from sqlmodel import Session

from .core.config import get_settings
from .core.errors import NotFoundError
from .core.logging import configure_logging
from .db.session import engine, init_db
from .services import alerts, ledger

app = typer.Typer(help="Run and operate the storefront order and inventory service.")


def _print_header(title: str) -> None:
    typer.secho(title, bold=True, fg=typer.colors.CYAN)


def _prepare() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, json_output=False)
    init_db()


@app.command()
def run(
    host: Optional[str] = typer.Option(None, help="Hostname to bind"),
    port: Optional[int] = typer.Option(None, help="Port to expose"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
    log_level: Optional[str] = typer.Option(None, help="Uvicorn log level"),
) -> None:
    """Start the API using Uvicorn."""

    settings = get_settings()
    uvicorn.run(
        "storefront_orders.main:create_application",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=(log_level or settings.log_level).lower(),
        factory=True,
    )


@app.command("init-db")
def init_db_cmd() -> None:
    """Create the database tables."""

    _prepare()
    typer.echo(f"Database initialised at {get_settings().database_url}")


@app.command("stock-status")
def stock_status() -> None:
    """Print the inventory summary."""

    _prepare()
    with Session(engine) as session:
        status = ledger.get_stock_status(session)
    _print_header("Inventory")
    typer.echo(f"Products:        {status.total_products}")
    typer.echo(f"In stock:        {status.in_stock}")
    typer.echo(f"Low stock:       {status.low_stock}")
    typer.echo(f"Out of stock:    {status.out_of_stock}")
    typer.echo(f"Inventory value: {status.total_inventory_value}")
    typer.echo(f"Open alerts:     {status.open_alert_count}")


@app.command("low-stock")
def low_stock(
    threshold: Optional[int] = typer.Option(None, help="Override each product's alert level"),
) -> None:
    """List tracked products at or below their alert level."""

    _prepare()
    with Session(engine) as session:
        products = ledger.products_needing_restock(session, threshold=threshold)
        if not products:
            typer.echo("Nothing needs restocking.")
            return
        _print_header("Products needing restock")
        for product in products:
            typer.echo(
                f"- {product.id} {product.name} | qty={product.stock_quantity} | alert_level={product.stock_alert_level}"
            )


@app.command()
def restock(
    product_id: str = typer.Argument(..., help="Product identifier"),
    quantity: int = typer.Argument(..., min=1, help="Units received"),
    note: Optional[str] = typer.Option(None, help="Note stored on the history entry"),
    actor: Optional[str] = typer.Option(None, help="Who received the stock"),
) -> None:
    """Add received units to a product's stock."""

    _prepare()
    with Session(engine) as session:
        try:
            entry = ledger.restock(session, product_id, quantity, note=note, actor=actor)
        except NotFoundError as exc:
            typer.secho(str(exc), fg=typer.colors.RED)
            raise typer.Exit(code=1) from exc
        typer.secho(f"Stock {entry.previous_quantity} -> {entry.new_quantity}", fg=typer.colors.GREEN)


@app.command("alerts")
def list_alerts() -> None:
    """Show unresolved stock alerts, newest first."""

    _prepare()
    with Session(engine) as session:
        rows = alerts.list_open_alerts(session)
        if not rows:
            typer.echo("No open alerts.")
            return
        _print_header("Open alerts")
        for alert, product in rows:
            typer.echo(
                f"- {alert.alert_type} {product.name} | at={alert.quantity_at_alert} | now={product.stock_quantity}"
            )


def main() -> None:
    """Entry-point for console scripts."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
