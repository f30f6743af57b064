from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from storefront_orders.models.base import CouponType


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=64)
    coupon_type: CouponType = CouponType.PERCENTAGE
    value: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    description: Optional[str] = None
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    min_order_value: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    max_uses: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_percentage(self) -> "CouponCreate":
        if self.coupon_type is CouponType.PERCENTAGE and self.value > 100:
            raise ValueError("percentage coupons cannot exceed 100")
        return self


class CouponRead(CouponCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    uses_count: int
    created_at: datetime


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    subtotal: Decimal = Field(..., gt=0)


class CouponQuoteRead(BaseModel):
    code: str
    coupon_type: CouponType
    value: Decimal
    discount: Decimal
    free_shipping: bool
    description: Optional[str] = None
