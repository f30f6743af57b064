from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront_orders.models.base import AlertType
from storefront_orders.schemas.catalog import ProductRead


class StockStatusRead(BaseModel):
    total_products: int
    in_stock: int
    low_stock: int
    out_of_stock: int
    total_inventory_value: Decimal
    open_alert_count: int


class QuantitySet(BaseModel):
    quantity: int = Field(..., ge=0)
    note: Optional[str] = None
    actor: Optional[str] = None


class QuantityAdjust(BaseModel):
    delta: int = Field(..., description="Positive for inbound, negative for outbound")
    note: Optional[str] = None
    actor: Optional[str] = None


class StockNotePayload(BaseModel):
    note: str = Field(..., min_length=1)
    actor: Optional[str] = None


class RestockPayload(BaseModel):
    quantity: int = Field(..., gt=0)
    note: Optional[str] = None
    actor: Optional[str] = None


class BulkQuantityItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=0)
    note: Optional[str] = None


class BulkRestockItem(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    note: Optional[str] = None


class BulkResult(BaseModel):
    requested: int
    succeeded: int


class StockHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: str
    previous_quantity: int
    new_quantity: int
    delta: int
    change_type: str
    order_id: Optional[str] = None
    note: Optional[str] = None
    actor: Optional[str] = None
    created_at: datetime


class AvailabilityRead(BaseModel):
    product_id: str
    available: bool
    current_stock: int
    message: Optional[str] = None


class AlertCreate(BaseModel):
    product_id: str
    alert_type: AlertType
    note: Optional[str] = None


class AlertResolve(BaseModel):
    note: Optional[str] = None
    resolved_by: Optional[str] = None


class StockAlertRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    alert_type: str
    quantity_at_alert: int
    is_resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime


class OpenAlertRead(StockAlertRead):
    product: ProductRead
