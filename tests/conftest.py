import os
from collections.abc import Callable, Generator
from decimal import Decimal
from typing import Any

os.environ.setdefault("DB__CONN", "sqlite://")
os.environ.setdefault("LOG__JSON", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from storefront_orders.api.deps import get_db
from storefront_orders.main import create_application
from storefront_orders.models import Product


@pytest.fixture(name="db_engine")
def db_engine_fixture(tmp_path) -> Generator[Engine, None, None]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(db_engine: Engine) -> Generator[Session, None, None]:
    with Session(db_engine) as session:
        yield session


@pytest.fixture(name="make_product")
def make_product_fixture(session: Session) -> Callable[..., Product]:
    def factory(**overrides: Any) -> Product:
        values: dict[str, Any] = {"name": "Linen Shirt", "price": Decimal("50.00"), "stock_quantity": 10}
        values.update(overrides)
        product = Product(**values)
        session.add(product)
        session.commit()
        session.refresh(product)
        return product

    return factory


@pytest.fixture(name="client")
def client_fixture(db_engine):  # type: ignore[annotations]
    app = create_application()

    def get_db_override() -> Generator[Session, None, None]:
        with Session(db_engine) as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    app.dependency_overrides[get_db] = get_db_override

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
