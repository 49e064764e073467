"""
core/headers.py -- Security response headers.

api/main.py applies these to every response through middleware. The error
views in web/ apply them as well, because Starlette renders the catch-all 500
in ServerErrorMiddleware, outside every user middleware.
"""

from starlette.responses import Response

from core.config import get_settings

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; script-src 'self'; img-src 'self' data: https:"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}

HSTS = "max-age=15552000; includeSubDomains"


def apply_security_headers(response: Response) -> Response:
    """Set any security header the response does not already carry."""
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if get_settings().is_production:
        response.headers.setdefault("Strict-Transport-Security", HSTS)
    return response
