from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PricingRulesRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tax_rate: Decimal
    shipping_flat: Decimal
    free_shipping_threshold: Decimal


class PricingRulesUpdate(BaseModel):
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=1)
    shipping_flat: Optional[Decimal] = Field(default=None, ge=0)
    free_shipping_threshold: Optional[Decimal] = Field(default=None, ge=0)
