import os

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from .jwt_handler import verify_access_token

# Applied to order placement only; catalog reads are not limited
ORDER_RATE_LIMIT = os.getenv("ORDER_RATE_LIMIT", "30/minute")

def user_id_or_ip(request: Request) -> str:
    """
    Rate limit key: the token's user when the caller is signed in,
    otherwise the client address.
    """
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        payload = verify_access_token(token)
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"

    return f"ip:{get_remote_address(request)}"

limiter = Limiter(key_func=user_id_or_ip)
