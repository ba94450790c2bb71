"""
Affiliate engine error taxonomy.

All errors are synchronous policy violations returned to the caller;
none of them is retried.
"""
from typing import Dict, Optional


class AffiliateEngineError(Exception):
    """Base exception carrying a user-facing message and the HTTP status."""
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AffiliateEngineError):
    """Malformed rule values, negative amounts, invalid transitions."""
    status_code = 400


class NotFound(AffiliateEngineError):
    """Unknown affiliate, store, link, earning, rule or request reference."""
    status_code = 404


class DuplicatePendingRequest(AffiliateEngineError):
    """A pending withdrawal request already exists for (affiliate, store)."""
    status_code = 409


class CouponAttributionLocked(AffiliateEngineError):
    """Coupon already has earnings attributed to an affiliate link."""
    status_code = 409


class InsufficientBalance(AffiliateEngineError):
    """Requested amount exceeds the available balance."""
    status_code = 422
