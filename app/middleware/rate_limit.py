"""
Per-IP rate limiting for the public checkout endpoint (slowapi).

The Stripe webhook route carries no limit.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import get_settings

limiter = Limiter(key_func=get_remote_address)


def payment_limit() -> str:
    return get_settings().payment_rate_limit
