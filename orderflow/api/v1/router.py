from fastapi import APIRouter

from orderflow.api.v1.endpoints import (
    payments,
    shipping,
    cart,
)

api_router = APIRouter(prefix="/api/v1")

# ==================== Payments (Authorize.Net) ====================
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"]
)

# ==================== Shipping (ShipStation rates) ====================
api_router.include_router(
    shipping.router,
    prefix="/shipping",
    tags=["Shipping"]
)

# ==================== Cart ====================
api_router.include_router(
    cart.router,
    prefix="/cart",
    tags=["Cart"]
)
