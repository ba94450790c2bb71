"""
Pydantic schemas for affiliate administration.

This module defines request/response schemas for:
- Stores and their maturity setting
- Affiliate registration & profile
- Store invites (StoreAffiliate links) and default commission
- Coupons and coupon attribution
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from affiliate_engine.core.enum_utils import (
    VALID_COMMISSION_TYPES,
    VALID_COUPON_SCOPES,
    normalize_to_uppercase,
)
from affiliate_engine.models.affiliate import CommissionType
from affiliate_engine.models.coupon import CouponScope, DiscountType
from affiliate_engine.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


# ============================================================================
# Store Schemas
# ============================================================================

class StoreCreate(BaseCreateSchema):
    """Schema for registering a store with the engine"""
    name: str = Field(..., min_length=1, max_length=200)
    affiliate_commission_maturity_days: Optional[int] = Field(None, ge=0)


class StoreMaturityUpdate(BaseUpdateSchema):
    """Schema for changing the store's maturity period (carência)"""
    maturity_days: int = Field(..., ge=0, description="Days after delivery before commission is withdrawable")


class StoreResponse(BaseResponseSchema):
    """Schema for store response"""
    id: UUID
    name: str
    affiliate_commission_maturity_days: int
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Affiliate Schemas
# ============================================================================

class AffiliateCreate(BaseCreateSchema):
    """Schema for affiliate registration"""
    name: str = Field(..., min_length=2, max_length=200)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    pix_key: Optional[str] = Field(None, max_length=140)


class AffiliateUpdate(BaseUpdateSchema):
    """Schema for updating an affiliate profile"""
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    email: Optional[str] = Field(None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    pix_key: Optional[str] = Field(None, max_length=140)


class AffiliateResponse(BaseResponseSchema):
    """Schema for affiliate response"""
    id: UUID
    name: str
    email: str
    phone: Optional[str] = None
    pix_key: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime


class AffiliateList(BaseModel):
    """Schema for paginated affiliate list"""
    items: List[AffiliateResponse]
    total: int
    page: int
    page_size: int


# ============================================================================
# Store Affiliate (link) Schemas
# ============================================================================

class StoreAffiliateInvite(BaseCreateSchema):
    """Schema for inviting an affiliate to a store"""
    store_id: UUID
    affiliate_id: UUID
    default_commission_type: CommissionType = CommissionType.PERCENTAGE
    default_commission_value: Decimal = Field(default=Decimal("0"), ge=0)
    commission_enabled: bool = True

    @field_validator("default_commission_type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return normalize_to_uppercase(v, VALID_COMMISSION_TYPES)


class DefaultCommissionUpdate(BaseUpdateSchema):
    """Schema for changing a link's default commission"""
    commission_type: CommissionType
    commission_value: Decimal = Field(..., ge=0)
    commission_enabled: Optional[bool] = None

    @field_validator("commission_type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return normalize_to_uppercase(v, VALID_COMMISSION_TYPES)


class StoreAffiliateResponse(BaseResponseSchema):
    """Schema for store affiliate link response"""
    id: UUID
    store_id: UUID
    affiliate_id: UUID
    status: str
    default_commission_type: str
    default_commission_value: Decimal
    commission_enabled: bool
    invited_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Coupon Schemas
# ============================================================================

class CouponCreate(BaseCreateSchema):
    """Schema for creating a store coupon"""
    store_id: UUID
    code: str = Field(..., min_length=1, max_length=50)
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    scope: CouponScope = CouponScope.ALL
    category_names: List[str] = Field(default_factory=list)
    product_ids: List[str] = Field(default_factory=list)

    @field_validator("discount_type", mode="before")
    @classmethod
    def normalize_discount_type(cls, v):
        return normalize_to_uppercase(v, VALID_COMMISSION_TYPES)

    @field_validator("scope", mode="before")
    @classmethod
    def normalize_scope(cls, v):
        return normalize_to_uppercase(v, VALID_COUPON_SCOPES)


class CouponResponse(BaseResponseSchema):
    """Schema for coupon response"""
    id: UUID
    store_id: UUID
    code: str
    discount_type: str
    discount_value: Decimal
    scope: str
    category_names: Optional[List[str]] = None
    product_ids: Optional[List[str]] = None
    is_active: bool
    store_affiliate_id: Optional[UUID] = None
    created_at: datetime


class CouponLinkRequest(BaseCreateSchema):
    """Schema for attributing a coupon to a store affiliate"""
    store_affiliate_id: UUID


class CouponLinkResponse(BaseResponseSchema):
    """Schema for coupon attribution response"""
    id: UUID
    coupon_id: UUID
    store_affiliate_id: UUID
    created_at: datetime


class AttributionResponse(BaseModel):
    """Schema for coupon code attribution lookup"""
    coupon: CouponResponse
    store_affiliate: StoreAffiliateResponse
