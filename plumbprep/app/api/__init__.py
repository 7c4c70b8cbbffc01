"""
API package initialization
"""

# Import all routers to make them available
from . import referrals, bulk_enrollment, employers, billing, stripe_webhook

__all__ = ["referrals", "bulk_enrollment", "employers", "billing", "stripe_webhook"]
