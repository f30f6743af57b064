from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Index, text
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp used for every stored datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to timestamps read back from backends that drop the offset (SQLite)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UTC_TIMESTAMP = DateTime(timezone=True)


def new_id() -> str:
    return str(uuid4())


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURN_REQUESTED = "return_requested"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ChangeType(str, Enum):
    PURCHASE = "purchase"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    RESTOCK = "restock"


class AlertType(str, Enum):
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    RESTOCK_NEEDED = "restock_needed"


class StockLevel(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


class Product(SQLModel, table=True):
    __table_args__ = (CheckConstraint("stock_quantity >= 0", name="ck_product_stock_non_negative"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    sku: Optional[str] = Field(default=None, index=True, unique=True)
    price: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    image: Optional[str] = None
    track_inventory: bool = Field(default=True)
    allow_backorder: bool = Field(default=False)
    stock_quantity: int = Field(default=0)
    stock_alert_level: int = Field(default=5)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)


class StockHistory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: str = Field(foreign_key="product.id", index=True)
    previous_quantity: int
    new_quantity: int
    delta: int
    change_type: str = Field(default=ChangeType.ADJUSTMENT.value, index=True)
    order_id: Optional[str] = Field(default=None, foreign_key="order.id", index=True)
    note: Optional[str] = None
    actor: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP, index=True)


class StockAlert(SQLModel, table=True):
    __table_args__ = (
        Index(
            "uq_stockalert_open_per_type",
            "product_id",
            "alert_type",
            unique=True,
            sqlite_where=text("is_resolved = 0"),
            postgresql_where=text("NOT is_resolved"),
        ),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    product_id: str = Field(foreign_key="product.id", index=True)
    alert_type: str = Field(index=True)
    quantity_at_alert: int
    is_resolved: bool = Field(default=False, index=True)
    resolved_at: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    resolved_by: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP, index=True)


class Order(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    order_number: str = Field(index=True, unique=True)
    customer_email: str = Field(index=True)
    customer_name: str
    customer_phone: Optional[str] = None
    shipping_address: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    subtotal: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    shipping_cost: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    tax: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    discount: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    coupon_code: Optional[str] = Field(default=None, index=True)
    total: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    status: str = Field(default=OrderStatus.PENDING.value, index=True)
    payment_method: Optional[str] = None
    payment_status: str = Field(default=PaymentStatus.PENDING.value, index=True)
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)
    cancelled_at: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    delivered_at: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)


class OrderItem(SQLModel, table=True):
    # No foreign key on product_id: snapshots survive product deletion.
    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: str = Field(foreign_key="order.id", index=True)
    product_id: str = Field(index=True)
    product_name: str
    product_image: str = Field(default="")
    product_sku: str = Field(default="")
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int
    unit_price: Decimal = Field(max_digits=10, decimal_places=2)
    line_total: Decimal = Field(max_digits=10, decimal_places=2)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)


class OrderCounter(SQLModel, table=True):
    name: str = Field(primary_key=True)
    value: int


class StoreSetting(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)


class Coupon(SQLModel, table=True):
    __table_args__ = (CheckConstraint("uses_count >= 0", name="ck_coupon_uses_non_negative"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    # Stored upper-cased; lookups normalise the submitted code the same way.
    code: str = Field(index=True, unique=True)
    coupon_type: str = Field(default=CouponType.PERCENTAGE.value)
    value: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    description: Optional[str] = None
    is_active: bool = Field(default=True)
    valid_from: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    valid_until: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    min_order_value: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    max_uses: Optional[int] = None
    uses_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)
