from fastapi import APIRouter

from backend.app.api.v1.endpoints.pharmacy_orders import router as pharmacy_orders_router
from backend.app.api.v1.endpoints.customer_orders import router as customer_orders_router
from backend.app.api.v1.endpoints.notifications import router as notifications_router
from backend.app.api.v1.endpoints.stock import router as stock_router

router = APIRouter()
router.include_router(pharmacy_orders_router, tags=["pharmacy_orders"])
router.include_router(customer_orders_router, tags=["orders"])
router.include_router(notifications_router, tags=["notifications"])
router.include_router(stock_router, tags=["stock"])
