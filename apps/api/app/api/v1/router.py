"""API v1 router combining all route modules."""

from fastapi import APIRouter

from app.api.v1 import account_recovery, health

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Account recovery (admin only)
api_router.include_router(
    account_recovery.router,
    prefix="/account-recovery",
    tags=["account-recovery"],
)
