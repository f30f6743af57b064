from fastapi import APIRouter, Depends
from sqlmodel import Session

from storefront_orders.api.deps import get_db
from storefront_orders.schemas.settings import PricingRulesRead, PricingRulesUpdate
from storefront_orders.services.store_settings import PricingRules, get_pricing_rules, update_pricing_rules

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/pricing", response_model=PricingRulesRead)
def read_pricing(db: Session = Depends(get_db)) -> PricingRules:
    return get_pricing_rules(db)


@router.patch("/pricing", response_model=PricingRulesRead)
def update_pricing(payload: PricingRulesUpdate, db: Session = Depends(get_db)) -> PricingRules:
    return update_pricing_rules(db, **payload.model_dump(exclude_unset=True))
