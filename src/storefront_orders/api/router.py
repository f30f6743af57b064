from fastapi import APIRouter

from storefront_orders.api.routes import catalog, coupons, health, inventory, order, settings

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(catalog.router)
api_router.include_router(inventory.router)
api_router.include_router(order.router)
api_router.include_router(coupons.router)
api_router.include_router(settings.router)
