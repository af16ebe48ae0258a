"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The authenticated principal travels through an explicit SecurityContext that
FastAPI builds per request -- nothing is stored in module-level or thread-local
state. Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by the web UI login flow.
  2. Authorization: Bearer <token> header -- API clients.

get_security_context() is the soft variant (anonymous context on failure).
get_current_user() raises AuthenticationRequired if the caller is anonymous.
require_authority() adds a 403 when the principal lacks the authority.

AuthenticationRequired is turned into a response by the handler registered in
api/main.py: 302 to /login for browser paths, 401 JSON for /api/ paths.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from auth.models import Authority, UserDetails
from auth.service import UserDetailsService
from auth.tokens import ACCESS_TOKEN_COOKIE, decode_access_token


class AuthenticationRequired(Exception):
    """The route needs a logged-in principal and the request has none."""


@dataclass(frozen=True)
class SecurityContext:
    """Per-request security state handed to route handlers."""

    principal: UserDetails | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    def has_authority(self, authority: Authority) -> bool:
        return self.principal is not None and self.principal.has_authority(authority)


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def get_security_context(request: Request) -> SecurityContext:
    """Build the SecurityContext for this request. Never raises."""
    token = _extract_token(request)
    if token:
        principal = decode_access_token(token)
        if principal is not None:
            return SecurityContext(principal=principal)
    return SecurityContext()


def get_user_details_service(request: Request) -> UserDetailsService:
    return UserDetailsService(request.app.state.user_store)


def get_current_user(context: SecurityContext = Depends(get_security_context)) -> UserDetails:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: UserDetails = Depends(get_current_user)): ...
    """
    if context.principal is None:
        raise AuthenticationRequired()
    return context.principal


def require_authority(authority: Authority) -> Callable[..., UserDetails]:
    """Build a dependency that admits only principals holding `authority`.

    Anonymous callers get AuthenticationRequired, authenticated callers
    without the authority get HTTP 403. Either way the route body never runs.
    """

    def dependency(user: UserDetails = Depends(get_current_user)) -> UserDetails:
        if not user.has_authority(authority):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"{authority.value} authority required."},
            )
        return user

    dependency.__name__ = f"require_{authority.value.lower()}"
    return dependency


require_admin = require_authority(Authority.ADMIN)
