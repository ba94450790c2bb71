"""
Enum Utilities for VARCHAR-based Status Fields

STORAGE STANDARD:
━━━━━━━━━━━━━━━━━
• Database: VARCHAR(50) - NOT database ENUM types
• SQLAlchemy: String(50) with Mapped[str]
• Pydantic: Python Enum for API validation
• API Response: Use string directly (NO .value needed)
• Case: All enum values stored in UPPERCASE

DATA FLOW:
━━━━━━━━━━
INPUT (API Request):
    Pydantic Enum → .value → String → Database
    Example: EarningStatus.PENDING → "PENDING" → VARCHAR

OUTPUT (API Response):
    Database → String → Return directly

CASE NORMALIZATION:
━━━━━━━━━━━━━━━━━━━
Dashboards historically send lowercase values ('percentage', 'pending').
Schemas call normalize_to_uppercase() from a mode="before" validator to
accept them while storing UPPERCASE.
"""

from enum import Enum
from typing import Any, Optional, TypeVar, Type, Set


T = TypeVar('T', bound=Enum)


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(EarningStatus.PENDING)  # Pydantic input
        'PENDING'
        >>> get_enum_value("PENDING")  # Database value
        'PENDING'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def to_enum(value: Any, enum_class: Type[T]) -> Optional[T]:
    """
    Convert a string value to an enum instance.

    Returns None when the value is not a member, case-insensitively.

    Examples:
        >>> to_enum("percentage", CommissionType)
        CommissionType.PERCENTAGE
        >>> to_enum("INVALID", CommissionType)
        None
    """
    if value is None:
        return None
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(str(value).strip().upper())
    except (ValueError, KeyError):
        return None


# =============================================================================
# CASE NORMALIZATION FOR PYDANTIC SCHEMAS
# =============================================================================

def normalize_to_uppercase(value: Any, valid_values: Set[str]) -> Any:
    """
    Normalize a string value to UPPERCASE if it's a valid enum value.

    Examples:
        >>> normalize_to_uppercase('pending', {'PENDING', 'PAID'})
        'PENDING'
        >>> normalize_to_uppercase('invalid', {'PENDING', 'PAID'})
        'invalid'  # Returns as-is for Pydantic to raise validation error
    """
    if value is None:
        return value
    if isinstance(value, str):
        upper_v = value.strip().upper()
        if upper_v in valid_values:
            return upper_v
    return value


# =============================================================================
# PRE-DEFINED VALID VALUE SETS
# =============================================================================

VALID_COMMISSION_TYPES = {"PERCENTAGE", "FIXED"}

VALID_RULE_TARGETS = {"PRODUCT", "CATEGORY"}

VALID_EARNING_STATUSES = {"PENDING", "APPROVED", "PAID", "CANCELLED"}

VALID_WITHDRAWAL_OUTCOMES = {"PAID", "REJECTED"}

VALID_COUPON_SCOPES = {"ALL", "CATEGORY", "PRODUCT"}
