from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from storefront_orders.api.deps import Page, get_db, pagination_params
from storefront_orders.models.base import Order, OrderStatus
from storefront_orders.schemas.order import (
    CancelPayload,
    CartValidationRead,
    CartValidationRequest,
    DashboardRevenueRead,
    OrderCreate,
    OrderItemRead,
    OrderRead,
    OrderStatsRead,
    OrderUpdate,
    ReturnPayload,
    StatusChange,
    TrackingPayload,
)
from storefront_orders.services import ledger, orders

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(payload: OrderCreate, db: Session = Depends(get_db)) -> OrderRead:
    order = orders.create_order(db, payload)
    return _load_order(db, order)


@router.post("/validate-cart", response_model=CartValidationRead)
def validate_cart(payload: CartValidationRequest, db: Session = Depends(get_db)) -> ledger.CartValidation:
    return ledger.validate_cart(db, payload.items)


@router.get("", response_model=list[OrderRead])
def list_orders(
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    page: Page = Depends(pagination_params),
    db: Session = Depends(get_db),
) -> list[OrderRead]:
    results = orders.list_orders(db, status=status_filter, search=search, limit=page.limit, offset=page.offset)
    return [_load_order(db, order) for order in results]


@router.get("/stats", response_model=OrderStatsRead)
def order_stats(db: Session = Depends(get_db)) -> orders.OrderStats:
    return orders.order_stats(db)


@router.get("/stats/dashboard", response_model=DashboardRevenueRead)
def dashboard_revenue(db: Session = Depends(get_db)) -> orders.DashboardRevenue:
    return orders.dashboard_revenue(db)


@router.get("/{order_key}", response_model=OrderRead)
def get_order(order_key: str, db: Session = Depends(get_db)) -> OrderRead:
    return _load_order(db, orders.get_order(db, order_key))


@router.patch("/{order_id}", response_model=OrderRead)
def update_order(order_id: str, payload: OrderUpdate, db: Session = Depends(get_db)) -> OrderRead:
    return _load_order(db, orders.update_order(db, order_id, payload))


@router.delete("/{order_id}", response_model=OrderRead)
def delete_order(order_id: str, db: Session = Depends(get_db)) -> OrderRead:
    return _load_order(db, orders.delete_order(db, order_id))


@router.post("/{order_id}/status", response_model=OrderRead)
def update_status(order_id: str, payload: StatusChange, db: Session = Depends(get_db)) -> OrderRead:
    return _load_order(db, orders.update_status(db, order_id, payload.status))


@router.post("/{order_id}/tracking", response_model=OrderRead)
def add_tracking(order_id: str, payload: TrackingPayload, db: Session = Depends(get_db)) -> OrderRead:
    return _load_order(db, orders.add_tracking(db, order_id, payload.tracking_number))


@router.post("/{order_id}/cancel", response_model=OrderRead)
def cancel_order(order_id: str, payload: CancelPayload, db: Session = Depends(get_db)) -> OrderRead:
    return _load_order(db, orders.cancel_order(db, order_id, payload.reason))


@router.post("/{order_id}/return", response_model=OrderRead)
def request_return(order_id: str, payload: ReturnPayload, db: Session = Depends(get_db)) -> OrderRead:
    order = orders.request_return(db, order_id, payload.reason, payload.description)
    return _load_order(db, order)


def _load_order(db: Session, order: Order) -> OrderRead:
    items = orders.list_order_items(db, order.id)
    return OrderRead(
        **order.model_dump(),
        items=[OrderItemRead.model_validate(item) for item in items],
    )
