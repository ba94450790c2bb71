"""Pydantic schemas for the earning ledger, balance summaries and audit logs."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, field_validator

from affiliate_engine.core.enum_utils import VALID_EARNING_STATUSES, normalize_to_uppercase
from affiliate_engine.models.earning import EarningStatus
from affiliate_engine.schemas.base import BaseResponseSchema, BaseUpdateSchema


class EarningItemResponse(BaseResponseSchema):
    """Per-item commission breakdown"""
    id: UUID
    product_id: str
    product_name: Optional[str] = None
    product_category: Optional[str] = None
    quantity: int
    item_subtotal: Decimal
    item_discount: Decimal
    item_value_with_discount: Decimal
    is_coupon_eligible: bool
    commission_type: str
    commission_value: Decimal
    commission_amount: Decimal
    commission_source: str


class EarningResponse(BaseResponseSchema):
    """Schema for earning response"""
    id: UUID
    order_id: UUID
    order_number: Optional[str] = None
    order_date: datetime
    order_status: str
    store_id: UUID
    affiliate_id: UUID
    store_affiliate_id: UUID
    coupon_id: Optional[UUID] = None
    order_total: Decimal
    commission_amount: Decimal
    settled_amount: Decimal
    status: str
    commission_available_at: Optional[datetime] = None
    maturity_days_applied: Optional[int] = None
    availability_estimated: bool = False
    withdrawal_request_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class EarningDetailResponse(EarningResponse):
    """Earning with its item breakdown and maturity countdown"""
    items: List[EarningItemResponse] = []
    bucket: Optional[str] = None
    countdown: Optional[dict] = None


class EarningList(BaseModel):
    """Schema for paginated earning list"""
    items: List[EarningResponse]
    total: int
    page: int
    page_size: int


class EarningStatusUpdate(BaseUpdateSchema):
    """Staff override of an earning status"""
    status: EarningStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        return normalize_to_uppercase(v, VALID_EARNING_STATUSES)


class EarningCounts(BaseModel):
    total: int = 0
    maturing: int = 0
    available: int = 0
    paid: int = 0
    pending_processing: int = 0
    cancelled: int = 0


class EarningSummary(BaseModel):
    """Balance aggregates for an affiliate"""
    affiliate_id: UUID
    store_id: Optional[UUID] = None
    earned: Decimal = Decimal("0")
    maturing: Decimal = Decimal("0")
    available_for_withdrawal: Decimal = Decimal("0")
    paid: Decimal = Decimal("0")
    pending_processing: Decimal = Decimal("0")
    cancelled: Decimal = Decimal("0")
    counts: EarningCounts
    next_available_at: Optional[datetime] = None


# ============================================================================
# Recalculation audit
# ============================================================================

class RecalcLogResponse(BaseResponseSchema):
    """Commission recalculation audit entry"""
    id: UUID
    order_id: UUID
    order_number: Optional[str] = None
    earning_id: UUID
    store_affiliate_id: UUID
    affiliate_id: UUID
    order_total_before: Decimal
    commission_amount_before: Decimal
    items_count_before: int
    order_total_after: Decimal
    commission_amount_after: Decimal
    items_count_after: int
    commission_difference: Decimal
    reason: str
    recalculated_at: datetime


class RecalcSummary(BaseModel):
    """Recalculation audit totals for a store"""
    total_recalculations: int = 0
    positive_count: int = 0
    negative_count: int = 0
    neutral_count: int = 0
    total_positive_variation: Decimal = Decimal("0")
    total_negative_variation: Decimal = Decimal("0")
    average_variation: Decimal = Decimal("0")


class RecalcAuditResponse(BaseModel):
    logs: List[RecalcLogResponse]
    summary: RecalcSummary
