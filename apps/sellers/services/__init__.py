"""
Sellers Services Package
Centralized imports for all services
"""

from .razorpay import razorpay_service
from .notifications import notification_service
from .exceptions import MarketplaceError

__all__ = [
    'razorpay_service',
    'notification_service',
    'MarketplaceError',
]
