"""
asgi.py -- Application assembly for the site user portal.

This is the ONLY file that imports from both api/ and web/. It joins the two
independent layers into a single ASGI app without coupling them to each other.
api/main.py knows nothing about web/; web/routes.py knows nothing about api/.

api/main.py answers every error with JSON. Browser paths get HTML instead:
an anonymous visitor is redirected to the login page and HTTP errors render
error.html. Paths under /api/ keep the JSON behavior.

Run with:  uvicorn asgi:app --reload
"""

from fastapi import Request
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.main import app, authentication_required_handler, http_exception_handler
from auth.dependencies import AuthenticationRequired
from web.routes import login_redirect, render_error_page
from web.routes import router as web_router

_API_PREFIX = "/api/"

app.include_router(web_router, tags=["Web UI"])


async def _authentication_required(request: Request, exc: AuthenticationRequired):
    if request.url.path.startswith(_API_PREFIX):
        return await authentication_required_handler(request, exc)
    return login_redirect(request, exc)


async def _http_exception(request: Request, exc: StarletteHTTPException):
    if request.url.path.startswith(_API_PREFIX):
        return await http_exception_handler(request, exc)
    return render_error_page(request, exc)


app.add_exception_handler(AuthenticationRequired, _authentication_required)
app.add_exception_handler(StarletteHTTPException, _http_exception)
