# Models module
from affiliate_engine.models.store import Store
from affiliate_engine.models.affiliate import (
    Affiliate,
    AffiliateStatus,
    StoreAffiliate,
    StoreAffiliateStatus,
    CommissionType,
)
from affiliate_engine.models.coupon import Coupon, CouponScope, DiscountType, StoreAffiliateCoupon
from affiliate_engine.models.commission import CommissionRule, RuleTarget
from affiliate_engine.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    normalize_order_status,
    is_delivered,
    is_cancelled,
)
from affiliate_engine.models.withdrawal import WithdrawalRequest, WithdrawalStatus
from affiliate_engine.models.earning import (
    AffiliateEarning,
    AffiliateEarningItem,
    CommissionRecalcLog,
    CommissionSource,
    EarningStatus,
)

__all__ = [
    "Store",
    "Affiliate",
    "AffiliateStatus",
    "StoreAffiliate",
    "StoreAffiliateStatus",
    "CommissionType",
    "Coupon",
    "CouponScope",
    "DiscountType",
    "StoreAffiliateCoupon",
    "CommissionRule",
    "RuleTarget",
    "Order",
    "OrderItem",
    "OrderStatus",
    "normalize_order_status",
    "is_delivered",
    "is_cancelled",
    "WithdrawalRequest",
    "WithdrawalStatus",
    "AffiliateEarning",
    "AffiliateEarningItem",
    "CommissionRecalcLog",
    "CommissionSource",
    "EarningStatus",
]
