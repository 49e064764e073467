"""
web/views.py -- Jinja2 environment and the shared error view.

Every failure the browser sees goes through render_error(): one template,
one status code, one message, one back link. Messages are always ones this
codebase wrote; exception text from lower layers is never passed in.
"""

from pathlib import Path

from fastapi import Request
from fastapi.templating import Jinja2Templates
from starlette.responses import Response

from core.headers import apply_security_headers

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def safe_back_url(url: str | None, default: str = "/") -> str:
    """Only accept server-local paths as back links.

    Rejects absolute URLs and protocol-relative ("//host") URLs so an error
    page can never become an open redirect.
    """
    if url and url.startswith("/") and not url.startswith("//"):
        return url
    return default


def render_error(request: Request, status_code: int, message: str, back_url: str = "/") -> Response:
    response = templates.TemplateResponse(
        request,
        "error.html",
        {"message": message, "back_url": safe_back_url(back_url)},
        status_code=status_code,
    )
    response.headers["Cache-Control"] = "no-store"
    return apply_security_headers(response)
