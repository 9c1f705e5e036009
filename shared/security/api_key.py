"""
Internal API key guarding catalog writes (product creation, restock).

Those calls come from back-office tooling, not from customers. Without
INTERNAL_API_KEY set, a placeholder key is used and a warning is emitted at
import so a misconfigured deployment is visible.
"""
import os
import secrets
import warnings

DEFAULT_INTERNAL_API_KEY = "insecure-default-change-me"

INTERNAL_API_KEY: str = os.getenv("INTERNAL_API_KEY") or DEFAULT_INTERNAL_API_KEY

if INTERNAL_API_KEY == DEFAULT_INTERNAL_API_KEY:
    warnings.warn(
        "INTERNAL_API_KEY is not set; catalog writes accept the placeholder key. "
        "Set it before deploying.",
        stacklevel=2,
    )


def verify_api_key(provided_key: str | None) -> bool:
    """Constant-time comparison against the configured key."""
    if not provided_key:
        return False
    return secrets.compare_digest(provided_key.encode(), INTERNAL_API_KEY.encode())
