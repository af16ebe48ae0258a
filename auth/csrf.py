"""
auth/csrf.py -- Synchronizer-token CSRF protection for state-changing forms.

One random token per browser session, kept in the Starlette signed session
cookie (SessionMiddleware). Templates render it into a hidden `_csrf` field;
verify_csrf() compares the submitted value with the session copy using
hmac.compare_digest before the route handler runs.

Non-browser clients may send the token in the X-CSRF-Token header instead.

Layer rule: no imports from api/ or web/. fastapi is allowed because
verify_csrf is a Depends() helper.
"""

from __future__ import annotations

import hmac
import logging
import secrets

from fastapi import HTTPException, Request

logger = logging.getLogger("siteuser.auth")

CSRF_SESSION_KEY = "csrf_token"
CSRF_FORM_FIELD = "_csrf"
CSRF_HEADER = "X-CSRF-Token"


def get_csrf_token(request: Request) -> str:
    """Return the session's CSRF token, creating one on first use."""
    token = request.session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        request.session[CSRF_SESSION_KEY] = token
    return token


async def verify_csrf(request: Request) -> None:
    """Reject the request with 403 unless it carries the session's CSRF token.

    Use as a route dependency:
        @router.post("/register", dependencies=[Depends(verify_csrf)])

    Starlette caches the parsed form on the Request, so reading it here does
    not consume the body for the handler.
    """
    expected = request.session.get(CSRF_SESSION_KEY)
    submitted = request.headers.get(CSRF_HEADER, "")
    if not submitted:
        form = await request.form()
        value = form.get(CSRF_FORM_FIELD)
        submitted = value if isinstance(value, str) else ""
    if not expected or not submitted or not hmac.compare_digest(expected.encode(), submitted.encode()):
        logger.warning("CSRF check failed on %s %s", request.method, request.url.path)
        raise HTTPException(
            status_code=403,
            detail={"code": "csrf_failed", "message": "Invalid or missing CSRF token."},
        )
