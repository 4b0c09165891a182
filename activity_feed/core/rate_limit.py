"""
Shared slowapi limiter, keyed by client address.
The default limit is applied to every route by SlowAPIMiddleware.
"""
from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from activity_feed.core.config import settings

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.RATE_LIMIT_FEED])
