"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted through SlowAPIMiddleware) and by
api/routes/v1/auth.py (per-route limit on POST /auth/login).

Both must see the same instance: a limiter created per module would keep its
own counters and the login limit would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
