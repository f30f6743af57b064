from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront_orders.models.base import OrderStatus, PaymentStatus


class ShippingAddress(BaseModel):
    address: str = Field(..., min_length=1)
    apartment: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=2)


class OrderLine(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    size: Optional[str] = None
    color: Optional[str] = None


class OrderCreate(BaseModel):
    customer_email: EmailStr
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: Optional[str] = None
    shipping_address: ShippingAddress
    items: List[OrderLine] = Field(..., min_length=1)
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    coupon_code: Optional[str] = Field(default=None, min_length=3, max_length=64)


class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    product_name: str
    product_image: str
    product_sku: str
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_number: str
    customer_email: str
    customer_name: str
    customer_phone: Optional[str] = None
    shipping_address: ShippingAddress
    subtotal: Decimal
    shipping_cost: Decimal
    tax: Decimal
    discount: Decimal
    coupon_code: Optional[str] = None
    total: Decimal
    status: OrderStatus
    payment_method: Optional[str] = None
    payment_status: PaymentStatus
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    items: List[OrderItemRead] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[str] = None


class StatusChange(BaseModel):
    status: OrderStatus


class TrackingPayload(BaseModel):
    tracking_number: str = Field(..., min_length=1, max_length=100)


class CancelPayload(BaseModel):
    reason: Optional[str] = None


class ReturnPayload(BaseModel):
    reason: str = Field(..., min_length=1)
    description: Optional[str] = None


class CartValidationRequest(BaseModel):
    items: List[OrderLine] = Field(..., min_length=1)


class CartError(BaseModel):
    product_id: str
    current_stock: int
    message: str


class CartValidationRead(BaseModel):
    valid: bool
    errors: List[CartError] = Field(default_factory=list)


class OrderStatsRead(BaseModel):
    """Raw aggregate over every order, cancelled and refunded included."""

    total_orders: int
    total_revenue: Decimal
    pending: int
    processing: int
    shipped: int
    delivered: int


class DashboardRevenueRead(BaseModel):
    """Paid revenue excluding cancelled and refunded orders."""

    total_revenue: Decimal
    paid_orders: int
    active_orders: int
    pending_orders: int
