from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    sku: Optional[str] = Field(default=None, max_length=64)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    image: Optional[str] = None
    track_inventory: bool = True
    allow_backorder: bool = False
    stock_alert_level: int = Field(default=5, ge=0)


class ProductCreate(ProductBase):
    stock_quantity: int = Field(default=0, ge=0, description="Opening stock, recorded in the ledger")


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    sku: Optional[str] = Field(default=None, max_length=64)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    image: Optional[str] = None
    track_inventory: Optional[bool] = None
    allow_backorder: Optional[bool] = None
    stock_alert_level: Optional[int] = Field(default=None, ge=0)


class ProductRead(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    stock_quantity: int
    created_at: datetime
    updated_at: datetime
