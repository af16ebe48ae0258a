"""
web/routes.py -- Jinja2 template routes for the site user portal.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user store) but return HTML instead of JSON.

Routes:
  GET  /             -- the logged-in user's page (auth required)
  GET  /login        -- login form (?register, ?logout, ?error notices)
  POST /login        -- handle password login, set session cookie
  POST /logout       -- clear session cookie, redirect /login?logout
  GET  /register     -- registration form
  POST /register     -- validate, persist, redirect /login?register
  GET  /admin/list   -- user list (ADMIN authority required)

Every POST requires the session CSRF token (auth.csrf.verify_csrf). Access
control runs in route dependencies, so a rejected caller never reaches the
handler body.
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth.csrf import get_csrf_token, verify_csrf
from auth.dependencies import (
    AuthenticationRequired,
    get_current_user,
    get_security_context,
    get_user_details_service,
    require_admin,
)
from auth.models import GENDER_LABELS, Authority, UserDetails
from auth.service import UserDetailsService, authenticate_user, register_user
from auth.store import SiteUserStore
from auth.tokens import clear_auth_cookie, create_access_token, set_auth_cookie
from core.config import get_settings
from core.limiter import limiter
from web.forms import RegistrationForm, field_errors

logger = logging.getLogger("siteuser.web")

_settings = get_settings()

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Template globals: every page can render the CSRF field and the navbar
# principal without each handler passing them explicitly.
templates.env.globals["csrf_token"] = get_csrf_token
templates.env.globals["get_security_context"] = get_security_context
router = APIRouter()

# Notices for the bare query flags /login?register, /login?logout and
# /login?error. Only these fixed strings ever reach the template.
_LOGIN_NOTICES: dict[str, str] = {
    "register": "ユーザー登録が完了しました。ログインしてください。",
    "logout": "ログアウトしました。",
}
_LOGIN_ERROR = "ユーザー名またはパスワードが正しくありません。"
_USERNAME_TAKEN = "このユーザー名は既に使用されています。"


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Rejects absolute URLs and protocol-relative ("//host") URLs, both of which
    would send the user off-site after login.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/"


# ---------------------------------------------------------------------------
# GET / -- current user's page
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request, user: UserDetails = Depends(get_current_user)) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "user.html",
        {"username": user.username, "authority": user.authority.value},
    )


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page."""
    if get_security_context(request).is_authenticated:
        return RedirectResponse("/", status_code=302)

    params = request.query_params
    notice = next((msg for flag, msg in _LOGIN_NOTICES.items() if flag in params), None)
    error_msg = _LOGIN_ERROR if "error" in params else None
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "notice": notice,
            "error_msg": error_msg,
            "next_url": _safe_next(params.get("next")),
        },
    )


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_class=HTMLResponse, dependencies=[Depends(verify_csrf)])
def login_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    next_url: str = Form("/", alias="next"),
    service: UserDetailsService = Depends(get_user_details_service),
) -> RedirectResponse:
    """Handle username/password login form submission.

    The username is stripped the same way RegistrationForm strips it.
    """
    user = authenticate_user(service, username.strip(), password)
    if user is None:
        return RedirectResponse("/login?error", status_code=302)

    token = create_access_token(user.username, user.authority)
    resp = RedirectResponse(_safe_next(next_url), status_code=302)
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    logger.info("User %r logged in", user.username)
    return resp


@router.post("/logout", dependencies=[Depends(verify_csrf)])
def logout(request: Request) -> RedirectResponse:
    """Clear the session cookie and redirect to the login page."""
    resp = RedirectResponse("/login?logout", status_code=302)
    clear_auth_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _render_register(request: Request, values: dict, errors: dict[str, list[str]]) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "register.html",
        {
            "form": values,
            "errors": errors,
            "genders": GENDER_LABELS,
            "authorities": list(Authority),
        },
    )


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    values = {"username": "", "email": "", "gender": 0, "admin": False, "authority": Authority.USER.value}
    return _render_register(request, values, {})


@limiter.limit(_settings.register_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/register", response_class=HTMLResponse, dependencies=[Depends(verify_csrf)])
def register_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    email: str = Form(""),
    gender: str = Form(""),
    admin: str = Form(""),
    authority: str = Form(""),
) -> HTMLResponse:
    """Validate the registration form; persist and redirect on success.

    Validation failures and a taken username re-render the form with
    per-field errors (HTTP 200). The password is never echoed back.
    """
    values = {
        "username": username,
        "email": email,
        "gender": gender,
        "admin": admin,
        "authority": authority,
    }
    try:
        form = RegistrationForm(password=password, **values)
    except ValidationError as exc:
        return _render_register(request, values, field_errors(exc))

    store: SiteUserStore = request.app.state.user_store
    try:
        register_user(store, form.to_site_user())
    except IntegrityError:
        logger.info("Registration rejected: username %r already exists", form.username)
        return _render_register(request, values, {"username": [_USERNAME_TAKEN]})

    return RedirectResponse("/login?register", status_code=302)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.get("/admin/list", response_class=HTMLResponse)
def admin_list(request: Request, user: UserDetails = Depends(require_admin)) -> HTMLResponse:
    """List every registered user. Non-admins are stopped by require_admin."""
    store: SiteUserStore = request.app.state.user_store
    return templates.TemplateResponse(request, "list.html", {"users": store.find_all()})


# ---------------------------------------------------------------------------
# Exception rendering for browser paths (installed by asgi.py)
# ---------------------------------------------------------------------------


def login_redirect(request: Request, exc: AuthenticationRequired) -> RedirectResponse:
    """Send an anonymous browser to the login page, remembering where it was going."""
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return RedirectResponse(f"/login?next={quote(target, safe='/')}", status_code=302)


def render_error_page(request: Request, exc: StarletteHTTPException) -> HTMLResponse:
    """Render error.html with the exception's status code."""
    message = exc.detail.get("message") if isinstance(exc.detail, dict) else str(exc.detail)
    return templates.TemplateResponse(
        request,
        "error.html",
        {"status_code": exc.status_code, "message": message},
        status_code=exc.status_code,
    )
