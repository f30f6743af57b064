from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from storefront_orders.api.deps import get_db
from storefront_orders.models.base import Coupon
from storefront_orders.schemas.coupon import CouponCreate, CouponQuoteRead, CouponRead, CouponValidateRequest
from storefront_orders.services import coupons

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("", response_model=CouponRead, status_code=status.HTTP_201_CREATED)
def create_coupon(payload: CouponCreate, db: Session = Depends(get_db)) -> Coupon:
    return coupons.create_coupon(db, **payload.model_dump())


@router.get("", response_model=list[CouponRead])
def list_coupons(active_only: bool = False, db: Session = Depends(get_db)) -> list[Coupon]:
    return coupons.list_coupons(db, active_only=active_only)


@router.post("/validate", response_model=CouponQuoteRead)
def validate_coupon(payload: CouponValidateRequest, db: Session = Depends(get_db)) -> coupons.CouponQuote:
    return coupons.validate_coupon(db, payload.code, payload.subtotal)
