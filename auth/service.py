"""
auth/service.py -- User lookup, login authentication and registration.

UserDetailsService is the bridge between the persistence store and the
security layer: it turns a username into a UserDetails principal or raises
UsernameNotFoundError. Every call is a fresh store lookup -- no caching and
no retry.

authenticate_user() wraps the lookup for the login flows and converts the
not-found condition into a plain authentication failure.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging

from auth.models import Authority, SiteUser, UserDetails
from auth.store import SiteUserStore
from auth.tokens import DUMMY_HASH, hash_password, verify_password

logger = logging.getLogger("siteuser.auth")


class UsernameNotFoundError(LookupError):
    """Raised by load_user_by_username() when no user has the given name."""

    def __init__(self, username: str) -> None:
        super().__init__(f"User not found: {username!r}")
        self.username = username


class UserDetailsService:
    """Load UserDetails for the authentication layer.

    Usage:
        service = UserDetailsService(store)
        details = service.load_user_by_username("Harada")
    """

    def __init__(self, store: SiteUserStore) -> None:
        self._store = store

    def load_user_by_username(self, username: str) -> UserDetails:
        """Return the principal for an exactly matching username.

        Raises UsernameNotFoundError when the store has no such user. Never
        returns None or an empty principal.
        """
        user = self._store.find_by_username(username)
        if user is None:
            raise UsernameNotFoundError(username)
        return UserDetails.from_site_user(user)


def authenticate_user(service: UserDetailsService, username: str, password: str) -> UserDetails | None:
    """Authenticate a username/password login with timing equalization.

    Always runs bcrypt whether or not the user exists, so response time does
    not reveal which usernames are registered:
    - Unknown username: bcrypt runs against DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the UserDetails on success, None on any failure.
    """
    try:
        details = service.load_user_by_username(username)
    except UsernameNotFoundError:
        verify_password(password, DUMMY_HASH)
        logger.info("Login failed: unknown username")
        return None
    if not verify_password(password, details.password):
        logger.info("Login failed: bad password for %r", username)
        return None
    return details


def register_user(store: SiteUserStore, user: SiteUser) -> SiteUser:
    """Hash the plaintext password, derive the authority and persist the user.

    The authority always follows the is_admin flag so the stored role and the
    flag can never disagree.

    Raises sqlalchemy.exc.IntegrityError if the username is already taken.
    """
    to_save = SiteUser(
        username=user.username,
        password=hash_password(user.password),
        email=user.email,
        gender=user.gender,
        is_admin=user.is_admin,
        authority=Authority.ADMIN if user.is_admin else Authority.USER,
    )
    saved = store.save(to_save)
    logger.info("Registered user %r (authority=%s)", saved.username, saved.authority.value)
    return saved
