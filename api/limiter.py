"""
api/limiter.py -- The one slowapi Limiter shared by every router.

api/main.py mounts it (app.state.limiter + SlowAPIMiddleware); the route
modules under api/routes/ decorate handlers with @limiter.limit(), placed
directly below the @router.<method>() line so the router registers the
limited wrapper. Limited handlers must take `request: Request`. Counters
live in process memory, keyed by client IP, so they only work if every
module uses this same instance.

The auth routes are the brute-force surface (password guessing, OTP
guessing), so they get the tight AUTH_RATE_LIMIT from settings; the asset
routes use fixed, looser per-route limits.

Tests switch the whole limiter off with `limiter.enabled = False` and turn
it back on, with `limiter.reset()`, only where they exercise the limits.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
