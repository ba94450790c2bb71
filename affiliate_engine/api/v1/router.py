from fastapi import APIRouter

from affiliate_engine.api.v1.endpoints import (
    # Affiliates, stores and invites
    affiliates,
    # Commission configuration
    commission_rules,
    coupons,
    # Order subsystem webhook
    order_events,
    # Ledger & payouts
    earnings,
    withdrawals,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Affiliates & Stores ====================
api_router.include_router(
    affiliates.router,
    tags=["Affiliates"]
)

# ==================== Commission Rules ====================
api_router.include_router(
    commission_rules.router,
    tags=["Commission Rules"]
)

# ==================== Coupons ====================
api_router.include_router(
    coupons.router,
    prefix="/coupons",
    tags=["Coupons"]
)

# ==================== Order Events ====================
api_router.include_router(
    order_events.router,
    prefix="/order-events",
    tags=["Order Events"]
)

# ==================== Earnings ====================
api_router.include_router(
    earnings.router,
    prefix="/earnings",
    tags=["Earnings"]
)

# ==================== Withdrawals ====================
api_router.include_router(
    withdrawals.router,
    prefix="/withdrawals",
    tags=["Withdrawals"]
)
