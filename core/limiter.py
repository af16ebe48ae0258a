"""
core/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware) and by the route modules in
api/ and web/ (to apply per-route limits with @limiter.limit()). A single
shared instance means all routes use the same in-memory counter store.

RATE_LIMIT_ENABLED=false turns every limit into a no-op (used by the tests,
which log in many times from the same client address).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)
