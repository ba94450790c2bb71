"""
Earnings API Endpoints

- Earning list and detail (with per-item breakdown)
- Balance summary per affiliate / store
- Staff status override
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query

from affiliate_engine.api.deps import DB
from affiliate_engine.core.exceptions import AffiliateEngineError
from affiliate_engine.core.timeutils import utcnow
from affiliate_engine.schemas.earning import (
    EarningDetailResponse,
    EarningItemResponse,
    EarningList,
    EarningResponse,
    EarningStatusUpdate,
    EarningSummary,
)
from affiliate_engine.services.earning_ledger import EarningLedger, classify_earning
from affiliate_engine.services.maturity import countdown


router = APIRouter()


@router.get("", response_model=EarningList)
async def list_earnings(
    db: DB,
    affiliate_id: Optional[UUID] = None,
    store_id: Optional[UUID] = None,
    status: Optional[str] = Query(None, description="PENDING, APPROVED, PAID, CANCELLED"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    ledger = EarningLedger(db)
    earnings, total = await ledger.list_earnings(
        affiliate_id=affiliate_id,
        store_id=store_id,
        status=status,
        page=page,
        page_size=page_size,
    )
    return {
        "items": earnings,
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/summary", response_model=EarningSummary)
async def get_earnings_summary(
    db: DB,
    affiliate_id: UUID,
    store_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    """
    Balance summary for an affiliate.

    Every earning lands in exactly one bucket: cancelled, paid, pending
    processing, maturing or available.
    """
    summary = await EarningLedger(db).get_summary(
        affiliate_id,
        store_id=store_id,
        start=start_date,
        end=end_date,
    )
    return EarningSummary(**summary)


@router.get("/{earning_id}", response_model=EarningDetailResponse)
async def get_earning(earning_id: UUID, db: DB):
    """Earning with its item breakdown and availability countdown."""
    ledger = EarningLedger(db)
    try:
        earning = await ledger.get_earning(earning_id)
        items = await ledger.get_earning_items(earning_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    now = utcnow()
    return EarningDetailResponse(
        **EarningResponse.model_validate(earning).model_dump(),
        items=[EarningItemResponse.model_validate(item) for item in items],
        bucket=classify_earning(earning, now),
        countdown=countdown(earning.commission_available_at, now),
    )


@router.get("/{earning_id}/items", response_model=list[EarningItemResponse])
async def get_earning_items(earning_id: UUID, db: DB):
    try:
        return await EarningLedger(db).get_earning_items(earning_id)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{earning_id}/status", response_model=EarningResponse)
async def update_earning_status(earning_id: UUID, data: EarningStatusUpdate, db: DB):
    try:
        return await EarningLedger(db).update_status(earning_id, data.status)
    except AffiliateEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
