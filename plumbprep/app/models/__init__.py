"""
Model package initialization
"""

from .user import User, SubscriptionTier, SubscriptionStatus
from .referral import Referral
from .monthly_commission import MonthlyCommission
from .bulk_enrollment import (
    BulkEnrollmentTier,
    BulkEnrollmentRequest,
    BulkStudentEnrollment,
    BulkRequestStatus,
)

__all__ = [
    # Core models
    "User",
    "Referral",
    "MonthlyCommission",
    "BulkEnrollmentTier",
    "BulkEnrollmentRequest",
    "BulkStudentEnrollment",

    # Enums
    "SubscriptionTier",
    "SubscriptionStatus",
    "BulkRequestStatus",
]
