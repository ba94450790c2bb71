# Services module
from affiliate_engine.services.rule_store import RuleStore
from affiliate_engine.services.earning_ledger import EarningLedger
from affiliate_engine.services.withdrawal_service import WithdrawalService
from affiliate_engine.services.affiliate_service import AffiliateService
from affiliate_engine.services.coupon_service import CouponService
from affiliate_engine.services.order_sync_service import OrderSyncService

__all__ = [
    "RuleStore",
    "EarningLedger",
    "WithdrawalService",
    "AffiliateService",
    "CouponService",
    "OrderSyncService",
]
