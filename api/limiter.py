"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and web/routes.py (to
apply limits per route).

Two limits:
  auth_rate_limit    -- @limiter.limit on POST /signup and POST /login.
  global_rate_limit  -- @limiter.shared_limit(..., scope=GLOBAL_SCOPE) on every
                        other web route, so all of them draw from one budget
                        per client.

The global limit is attached to each route explicitly. SlowAPIMiddleware only
applies default_limits to routes it can match in app.routes, and routers
mounted with include_router() are not always visible to that lookup.

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Keyed on the client address. Behind a reverse proxy, main.py enables uvicorn's
proxy_headers in production so the address is the real client, not the proxy.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

GLOBAL_SCOPE = "global"


def auth_rate_limit() -> str:
    """Limit string for credential-submitting routes (signup, login)."""
    return get_settings().auth_rate_limit


def global_rate_limit() -> str:
    """Limit string shared by every other rate-limited route."""
    return get_settings().global_rate_limit


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[get_settings().global_rate_limit],
    storage_uri="memory://",
)
