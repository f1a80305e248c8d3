"""
Utility Functions
- jwt_handler: JWT token handling
- ip_utils: client IP extraction for rate limiting
- membership_utils: membership expiry helpers
- payment_error_tracker: provider failure logging
"""
from storefront.utils.jwt_handler import (
    create_access_token,
    decode_access_token,
)
from storefront.utils.ip_utils import get_client_ip

__all__ = [
    'create_access_token',
    'decode_access_token',
    'get_client_ip',
]
