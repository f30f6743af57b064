"""Runtime pricing rules backed by ``StoreSetting`` rows."""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlmodel import Session, select

from storefront_orders.core.config import Settings, get_settings
from storefront_orders.core.logging import get_logger
from storefront_orders.models.base import StoreSetting, utcnow

logger = get_logger("settings")


@dataclass(frozen=True, slots=True)
class PricingRules:
    tax_rate: Decimal
    shipping_flat: Decimal
    free_shipping_threshold: Decimal


PRICING_KEYS = tuple(f.name for f in fields(PricingRules))


def _defaults(settings: Settings) -> dict[str, Decimal]:
    return {key: getattr(settings, key) for key in PRICING_KEYS}


def get_pricing_rules(db: Session, settings: Optional[Settings] = None) -> PricingRules:
    values = _defaults(settings or get_settings())
    rows = db.exec(select(StoreSetting).where(StoreSetting.key.in_(PRICING_KEYS))).all()
    for row in rows:
        try:
            values[row.key] = Decimal(row.value)
        except InvalidOperation:
            logger.error("ignoring malformed setting", extra={"key": row.key, "value": row.value})
    return PricingRules(**values)


def update_pricing_rules(db: Session, **changes: Optional[Decimal]) -> PricingRules:
    """Upsert the supplied pricing keys; ``None`` values are skipped."""

    for key, value in changes.items():
        if key not in PRICING_KEYS:
            raise ValueError(f"Unknown pricing setting '{key}'")
        if value is None:
            continue
        row = db.get(StoreSetting, key)
        if row is None:
            row = StoreSetting(key=key, value=str(value))
        else:
            row.value = str(value)
            row.updated_at = utcnow()
        db.add(row)
    db.commit()
    return get_pricing_rules(db)
