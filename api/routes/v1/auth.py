"""
api/routes/v1/auth.py -- Authentication REST endpoints for non-browser clients.

Routes:
  POST /api/v1/auth/login   -- password login; returns JWT and sets cookie
  POST /api/v1/auth/logout  -- clears cookie; 200
  GET  /api/v1/auth/me      -- current principal (requires auth)
  GET  /api/v1/auth/users   -- list all users (ADMIN only)

Security:
  POST /login is rate-limited (LOGIN_RATE_LIMIT, default 10/minute per IP).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  These endpoints take JSON or a Bearer token, not browser forms, so they do
  not use the CSRF dependency.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import LoginRequest, LoginResponse, MeResponse, UserResponse
from auth.dependencies import get_current_user, get_user_details_service, require_admin
from auth.models import UserDetails
from auth.service import UserDetailsService, authenticate_user
from auth.store import SiteUserStore
from auth.tokens import clear_auth_cookie, create_access_token, set_auth_cookie
from core.config import get_settings
from core.limiter import limiter

_settings = get_settings()

router = APIRouter()


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(
    request: Request,
    body: LoginRequest,
    service: UserDetailsService = Depends(get_user_details_service),
) -> JSONResponse:
    """Authenticate with username and password; return and set the JWT.

    Returns the same generic error for an unknown username and a wrong
    password so the endpoint does not reveal which usernames exist.
    """
    user = authenticate_user(service, body.username, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = create_access_token(user.username, user.authority)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            username=user.username,
            authority=user.authority,
        ).model_dump(mode="json"),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(current_user: UserDetails = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated principal."""
    return MeResponse(username=current_user.username, authority=current_user.authority)


@router.get("/auth/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    current_user: UserDetails = Depends(require_admin),
) -> list[UserResponse]:
    """List all user accounts. Admin only."""
    store: SiteUserStore = request.app.state.user_store
    return [UserResponse.from_site_user(u) for u in store.find_all()]
