from .base import (
    AlertType,
    ChangeType,
    Coupon,
    CouponType,
    Order,
    OrderCounter,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    StockAlert,
    StockHistory,
    StockLevel,
    StoreSetting,
)

__all__ = [
    "AlertType",
    "ChangeType",
    "Coupon",
    "CouponType",
    "Order",
    "OrderCounter",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "Product",
    "StockAlert",
    "StockHistory",
    "StockLevel",
    "StoreSetting",
]
