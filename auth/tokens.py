"""
auth/tokens.py -- Password hashing, session JWT and cookie utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the username (sub), the granted authority and expiry. The principal of
       every request after login is rebuilt from these claims, so the store is
       only consulted at login time. Verification returns None on any
       failure -- the security dependencies turn that into "anonymous".

  Passwords: bcrypt directly. The DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether a username exists.

  SECRET_KEY: sourced from core.config.get_settings().

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import Authority, UserDetails
from core.config import get_settings

logger = logging.getLogger("siteuser.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS_TOKEN_COOKIE = "access_token"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The registration form caps
    passwords at 255 characters; multi-byte input past 72 bytes is truncated
    before hashing, the same way verify_password() truncates.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store.
        return False


# Computed once at module load so the first failed login is not measurably
# faster than later ones.
DUMMY_HASH: str = hash_password("siteuser_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(username: str, authority: Authority, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with the principal's identity and configurable expiry.

    Args:
        username:       Stored as the JWT subject claim.
        authority:      Granted authority (USER or ADMIN).
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": username,
        "authority": Authority(authority).value,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> UserDetails | None:
    """Decode and verify a JWT. Returns the principal or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    username = payload.get("sub")
    try:
        authority = Authority(payload.get("authority"))
    except ValueError:
        return None
    if not username:
        return None
    return UserDetails(username=username, authorities=frozenset({authority}))


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": cookie not sent on cross-site POST.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
