"""Pydantic schemas for withdrawal requests and payouts."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from affiliate_engine.core.enum_utils import VALID_WITHDRAWAL_OUTCOMES, normalize_to_uppercase
from affiliate_engine.models.withdrawal import WithdrawalStatus
from affiliate_engine.schemas.base import BaseResponseSchema, BaseCreateSchema


class WithdrawalCreate(BaseCreateSchema):
    """Schema for requesting a withdrawal"""
    affiliate_id: UUID
    store_id: UUID
    amount: Optional[Decimal] = Field(None, description="Amount to withdraw (None = whole available balance)")
    pix_key: Optional[str] = Field(None, max_length=140, description="Defaults to the affiliate's PIX key")
    notes: Optional[str] = Field(None, max_length=1000)


class WithdrawalSettle(BaseCreateSchema):
    """Schema for settling a pending request"""
    outcome: WithdrawalStatus
    admin_notes: Optional[str] = Field(None, max_length=1000)
    payment_proof: Optional[str] = Field(None, max_length=500, description="Receipt URL or transfer reference")

    @field_validator("outcome", mode="before")
    @classmethod
    def normalize_outcome(cls, v):
        return normalize_to_uppercase(v, VALID_WITHDRAWAL_OUTCOMES)


class WithdrawalResponse(BaseResponseSchema):
    """Schema for withdrawal request response"""
    id: UUID
    affiliate_id: UUID
    store_id: UUID
    store_affiliate_id: Optional[UUID] = None
    amount: Decimal
    pix_key: str
    status: str
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    payment_proof: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class WithdrawalList(BaseModel):
    """Schema for paginated withdrawal list"""
    items: List[WithdrawalResponse]
    total: int
    page: int
    page_size: int


class PayoutInstructionResponse(BaseModel):
    """What the payout collaborator transfers"""
    withdrawal_request_id: UUID
    affiliate_id: UUID
    store_id: UUID
    amount: Decimal
    pix_key: str
    currency: str


class SettlementResponse(BaseModel):
    request: WithdrawalResponse
    payout_instruction: Optional[PayoutInstructionResponse] = None


class AvailableBalanceResponse(BaseModel):
    affiliate_id: UUID
    store_id: UUID
    available: Decimal
    has_pending_request: bool = False


class WithdrawalStats(BaseModel):
    """Withdrawal counts and totals"""
    total_count: int = 0
    pending_count: int = 0
    paid_count: int = 0
    rejected_count: int = 0
    pending_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
