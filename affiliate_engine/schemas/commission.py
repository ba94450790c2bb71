"""Pydantic schemas for commission rules and rule resolution previews."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from affiliate_engine.core.enum_utils import (
    VALID_COMMISSION_TYPES,
    VALID_RULE_TARGETS,
    normalize_to_uppercase,
)
from affiliate_engine.models.affiliate import CommissionType
from affiliate_engine.models.commission import RuleTarget
from affiliate_engine.schemas.base import BaseResponseSchema, BaseCreateSchema


class CommissionRuleCreate(BaseCreateSchema):
    """
    Schema for creating a product or category rule.

    `target` is the product id for PRODUCT rules and the category name for
    CATEGORY rules. Range checks happen in the rule store so API and direct
    service callers get the same errors.
    """
    applies_to: RuleTarget
    target: str = Field(..., min_length=1, max_length=200)
    commission_type: CommissionType
    commission_value: Decimal

    @field_validator("applies_to", mode="before")
    @classmethod
    def normalize_target(cls, v):
        return normalize_to_uppercase(v, VALID_RULE_TARGETS)

    @field_validator("commission_type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return normalize_to_uppercase(v, VALID_COMMISSION_TYPES)


class CommissionRuleResponse(BaseResponseSchema):
    """Schema for commission rule response"""
    id: UUID
    store_affiliate_id: UUID
    applies_to: str
    product_id: Optional[str] = None
    category_name: Optional[str] = None
    target_key: str
    commission_type: str
    commission_value: Decimal
    is_active: bool
    created_at: datetime
    deactivated_at: Optional[datetime] = None


# ============================================================================
# Resolution preview
# ============================================================================

class PreviewItem(BaseModel):
    """Order item used to preview commission resolution"""
    product_id: str = Field(..., min_length=1, max_length=64)
    product_name: Optional[str] = None
    category: Optional[str] = None
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    line_discount: Decimal = Field(default=Decimal("0"), ge=0)


class ResolutionPreviewRequest(BaseCreateSchema):
    """Resolve commissions for hypothetical items without recording anything"""
    items: List[PreviewItem] = Field(..., min_length=1)
    coupon_id: Optional[UUID] = None


class ItemCommissionResponse(BaseModel):
    """Per-item resolution result"""
    product_id: str
    product_name: Optional[str] = None
    category: Optional[str] = None
    quantity: int
    item_value_with_discount: Decimal
    is_coupon_eligible: bool
    commission_source: str
    commission_type: str
    commission_value: Decimal
    commission_amount: Decimal


class ResolutionPreviewResponse(BaseModel):
    """Resolution preview for a set of items"""
    store_affiliate_id: UUID
    items: List[ItemCommissionResponse]
    total_commission: Decimal
