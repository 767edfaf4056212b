"""Rate limiting middleware using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

rate_limiter = limiter.limit("60/minute")
upload_limiter = limiter.limit("10/minute")
