from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from storefront_orders.api.deps import Page, get_db, pagination_params
from storefront_orders.models.base import Product, utcnow
from storefront_orders.schemas.catalog import ProductCreate, ProductRead, ProductUpdate
from storefront_orders.services import alerts, ledger

router = APIRouter(prefix="/products", tags=["catalog"])

_THRESHOLD_FIELDS = {"track_inventory", "stock_alert_level"}


@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)) -> Product:
    product = Product(**payload.model_dump(exclude={"stock_quantity"}))
    db.add(product)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail="SKU already exists") from exc
    db.refresh(product)

    if payload.stock_quantity:
        ledger.set_quantity(db, product.id, payload.stock_quantity, note="Opening stock")
        db.refresh(product)
    return product


@router.get("", response_model=list[ProductRead])
def list_products(
    page: Page = Depends(pagination_params),
    db: Session = Depends(get_db),
) -> list[Product]:
    query = select(Product).order_by(Product.created_at.desc()).offset(page.offset).limit(page.limit)
    return list(db.exec(query).all())


@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: str, db: Session = Depends(get_db)) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.patch("/{product_id}", response_model=ProductRead)
def update_product(product_id: str, payload: ProductUpdate, db: Session = Depends(get_db)) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    update_data = payload.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(product, key, value)
    product.updated_at = utcnow()
    db.add(product)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail="SKU already exists") from exc
    db.refresh(product)
    if _THRESHOLD_FIELDS & update_data.keys():
        alerts.evaluate_product(db, product)
    return product
