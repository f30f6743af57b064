"""Server-side coupon validation and redemption.

The discount on an order is always derived here from a stored coupon; a
client never supplies an amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from storefront_orders.core.errors import InvalidCouponError
from storefront_orders.core.logging import get_logger
from storefront_orders.models.base import Coupon, CouponType, as_utc, utcnow
from storefront_orders.services import pricing

logger = get_logger("coupons")


@dataclass(frozen=True, slots=True)
class CouponQuote:
    code: str
    coupon_type: CouponType
    value: Decimal
    discount: Decimal
    free_shipping: bool
    description: Optional[str] = None


def normalize_code(code: str) -> str:
    return code.strip().upper()


def get_coupon(db: Session, code: str) -> Optional[Coupon]:
    return db.exec(select(Coupon).where(Coupon.code == normalize_code(code))).first()


def create_coupon(db: Session, **fields) -> Coupon:
    coupon = Coupon(**{**fields, "code": normalize_code(fields["code"])})
    for key in ("valid_from", "valid_until"):
        value = getattr(coupon, key)
        if value is not None:
            setattr(coupon, key, as_utc(value))
    if isinstance(coupon.coupon_type, CouponType):
        coupon.coupon_type = coupon.coupon_type.value
    db.add(coupon)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValueError(f"Coupon {coupon.code} already exists") from exc
    db.refresh(coupon)
    return coupon


def list_coupons(db: Session, active_only: bool = False) -> list[Coupon]:
    query = select(Coupon)
    if active_only:
        query = query.where(Coupon.is_active == True)  # noqa: E712
    return list(db.exec(query.order_by(Coupon.created_at.desc())).all())


def _discount_for(coupon: Coupon, subtotal: Decimal) -> Decimal:
    coupon_type = CouponType(coupon.coupon_type)
    if coupon_type is CouponType.PERCENTAGE:
        return min(pricing.money(subtotal * coupon.value / 100), subtotal)
    if coupon_type is CouponType.FIXED:
        return min(pricing.money(coupon.value), subtotal)
    return pricing.money(0)


def validate_coupon(db: Session, code: str, subtotal: Decimal) -> CouponQuote:
    """Check *code* against *subtotal* and work out the discount it grants.

    Raises :class:`InvalidCouponError` with a shopper-facing message when the
    coupon cannot be used. Nothing is written.
    """

    subtotal = pricing.money(subtotal)
    coupon = get_coupon(db, code)
    if coupon is None or not coupon.is_active:
        raise InvalidCouponError("Invalid or expired coupon code")

    now = utcnow()
    if coupon.valid_from is not None and now < as_utc(coupon.valid_from):
        raise InvalidCouponError("Coupon is not yet valid")
    if coupon.valid_until is not None and now > as_utc(coupon.valid_until):
        raise InvalidCouponError("Coupon has expired")
    if coupon.min_order_value is not None and subtotal < coupon.min_order_value:
        raise InvalidCouponError(f"Minimum order value of ${coupon.min_order_value} required")
    if coupon.max_uses is not None and coupon.uses_count >= coupon.max_uses:
        raise InvalidCouponError("Coupon usage limit reached")

    coupon_type = CouponType(coupon.coupon_type)
    return CouponQuote(
        code=coupon.code,
        coupon_type=coupon_type,
        value=pricing.money(coupon.value),
        discount=_discount_for(coupon, subtotal),
        free_shipping=coupon_type is CouponType.FREE_SHIPPING,
        description=coupon.description,
    )


def claim_use(db: Session, code: str) -> None:
    """Count one redemption inside the caller's transaction.

    The increment is a single conditional UPDATE, so concurrent checkouts
    cannot push ``uses_count`` past ``max_uses``. The caller commits.
    """

    result = db.exec(
        update(Coupon)
        .where(
            Coupon.code == normalize_code(code),
            Coupon.is_active == True,  # noqa: E712
            or_(Coupon.max_uses.is_(None), Coupon.uses_count < Coupon.max_uses),
        )
        .values(uses_count=Coupon.uses_count + 1)
    )
    if result.rowcount != 1:
        raise InvalidCouponError("Coupon usage limit reached")
    logger.info("coupon redeemed", extra={"coupon_code": normalize_code(code)})
