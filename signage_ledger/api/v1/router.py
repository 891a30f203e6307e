from fastapi import APIRouter

from signage_ledger.api.v1.endpoints import (
    payments,
    commissions,
    settlements,
    quotes,
    settings,
)

# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Payment gateway events ====================
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"]
)

# ==================== Commission ledger ====================
api_router.include_router(
    commissions.router,
    prefix="/commissions",
    tags=["Commissions"]
)

# ==================== Settlements ====================
api_router.include_router(
    settlements.router,
    prefix="/settlements",
    tags=["Settlements"]
)

# ==================== Quotes ====================
api_router.include_router(
    quotes.router,
    prefix="/quotes",
    tags=["Quotes"]
)

# ==================== Settings ====================
api_router.include_router(
    settings.router,
    prefix="/settings",
    tags=["Settings"]
)
