from .jwt_handler import create_access_token, verify_access_token
from .api_key import verify_api_key
from .dependencies import (
    ADMIN_ROLE,
    CUSTOMER_ROLE,
    Identity,
    get_current_user,
    identity_from_token,
    require_admin,
    verify_internal_api_key,
)
from .rate_limiter import limiter, user_id_or_ip, ORDER_RATE_LIMIT

__all__ = [
    "create_access_token",
    "verify_access_token",
    "verify_api_key",
    "ADMIN_ROLE",
    "CUSTOMER_ROLE",
    "Identity",
    "get_current_user",
    "identity_from_token",
    "require_admin",
    "verify_internal_api_key",
    "limiter",
    "user_id_or_ip",
    "ORDER_RATE_LIMIT",
]
