"""
asgi.py -- Application assembly for Doorman.

This is the ONLY file that imports from both api/ and web/. It joins the two
layers into a single ASGI app without coupling them to each other.
api/main.py knows nothing about web/; web/ only uses api.limiter.

Run with:  python main.py serve
           uvicorn asgi:app --reload
"""

from api.main import app
from web.errors import register_error_views
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])
register_error_views(app)
