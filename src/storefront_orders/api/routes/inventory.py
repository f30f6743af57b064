from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from storefront_orders.api.deps import get_db
from storefront_orders.models.base import Product, StockAlert, StockHistory
from storefront_orders.schemas.catalog import ProductRead
from storefront_orders.schemas.inventory import (
    AlertCreate,
    AlertResolve,
    AvailabilityRead,
    BulkQuantityItem,
    BulkRestockItem,
    BulkResult,
    OpenAlertRead,
    QuantityAdjust,
    QuantitySet,
    RestockPayload,
    StockAlertRead,
    StockHistoryRead,
    StockStatusRead,
    StockNotePayload,
)
from storefront_orders.services import alerts, ledger

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("/status", response_model=StockStatusRead)
def get_stock_status(db: Session = Depends(get_db)) -> ledger.StockStatus:
    return ledger.get_stock_status(db)


@router.get("/history", response_model=list[StockHistoryRead])
def list_history(
    product_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[StockHistory]:
    return ledger.get_history(db, product_id=product_id, limit=limit)


@router.get("/restock-needed", response_model=list[ProductRead])
def list_restock_needed(
    threshold: Optional[int] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
) -> list[Product]:
    return ledger.products_needing_restock(db, threshold=threshold)


@router.get("/alerts", response_model=list[OpenAlertRead])
def list_open_alerts(db: Session = Depends(get_db)) -> list[OpenAlertRead]:
    return [
        OpenAlertRead(
            **StockAlertRead.model_validate(alert).model_dump(),
            product=ProductRead.model_validate(product),
        )
        for alert, product in alerts.list_open_alerts(db)
    ]


@router.post("/alerts", response_model=StockAlertRead, status_code=status.HTTP_201_CREATED)
def create_alert(payload: AlertCreate, db: Session = Depends(get_db)) -> StockAlert:
    return alerts.create_alert(db, payload.product_id, payload.alert_type, payload.note)


@router.post("/alerts/{alert_id}/resolve", response_model=StockAlertRead)
def resolve_alert(alert_id: str, payload: AlertResolve, db: Session = Depends(get_db)) -> StockAlert:
    return alerts.resolve_alert(db, alert_id, note=payload.note, resolved_by=payload.resolved_by)


@router.post("/bulk-update", response_model=BulkResult)
def bulk_update(items: list[BulkQuantityItem], db: Session = Depends(get_db)) -> BulkResult:
    succeeded = ledger.bulk_set_quantity(db, ((i.product_id, i.quantity, i.note) for i in items))
    return BulkResult(requested=len(items), succeeded=succeeded)


@router.post("/bulk-restock", response_model=BulkResult)
def bulk_restock(items: list[BulkRestockItem], db: Session = Depends(get_db)) -> BulkResult:
    succeeded = ledger.bulk_restock(db, ((i.product_id, i.quantity, i.note) for i in items))
    return BulkResult(requested=len(items), succeeded=succeeded)


@router.put("/{product_id}/quantity", response_model=StockHistoryRead)
def set_quantity(product_id: str, payload: QuantitySet, db: Session = Depends(get_db)) -> StockHistory:
    return ledger.set_quantity(db, product_id, payload.quantity, note=payload.note, actor=payload.actor)


@router.post("/{product_id}/adjust", response_model=StockHistoryRead)
def adjust_quantity(product_id: str, payload: QuantityAdjust, db: Session = Depends(get_db)) -> StockHistory:
    return ledger.adjust_quantity(db, product_id, payload.delta, note=payload.note, actor=payload.actor)


@router.post("/{product_id}/restock", response_model=StockHistoryRead)
def restock(product_id: str, payload: RestockPayload, db: Session = Depends(get_db)) -> StockHistory:
    return ledger.restock(db, product_id, payload.quantity, note=payload.note, actor=payload.actor)


@router.post("/{product_id}/notes", response_model=StockHistoryRead, status_code=status.HTTP_201_CREATED)
def add_stock_note(product_id: str, payload: StockNotePayload, db: Session = Depends(get_db)) -> StockHistory:
    return ledger.add_stock_note(db, product_id, payload.note, actor=payload.actor)


@router.get("/{product_id}/availability", response_model=AvailabilityRead)
def check_availability(
    product_id: str,
    quantity: int = Query(default=1, gt=0),
    db: Session = Depends(get_db),
) -> ledger.Availability:
    return ledger.check_availability(db, product_id, quantity)
