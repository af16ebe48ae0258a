"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the store, service and routes do the work.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Authority(str, Enum):
    """Role used for route-level access decisions. Closed set."""

    USER = "USER"
    ADMIN = "ADMIN"


GENDER_LABELS: dict[int, str] = {0: "男性", 1: "女性", 2: "その他"}


@dataclass
class SiteUser:
    """One registrable account.

    password holds the bcrypt hash once the record has been persisted. The
    registration flow hashes before calling the store; the store never sees
    a plaintext password.
    """

    username: str = ""
    password: str = ""
    email: str = ""
    gender: int = 0
    is_admin: bool = False
    authority: Authority = Authority.USER
    id: int | None = None
    created_at: str | None = None

    @property
    def gender_label(self) -> str:
        return GENDER_LABELS.get(self.gender, "-")


@dataclass(frozen=True)
class UserDetails:
    """Authentication view of a SiteUser consumed by the security layer.

    authorities is derived from the stored authority field. The frozen
    dataclass keeps the principal immutable for the lifetime of a request.
    """

    username: str
    password: str = field(default="", repr=False)
    authorities: frozenset[Authority] = frozenset()

    @classmethod
    def from_site_user(cls, user: SiteUser) -> UserDetails:
        return cls(
            username=user.username,
            password=user.password,
            authorities=frozenset({user.authority}),
        )

    def has_authority(self, authority: Authority) -> bool:
        return authority in self.authorities

    @property
    def is_admin(self) -> bool:
        return self.has_authority(Authority.ADMIN)

    @property
    def authority(self) -> Authority:
        """Highest granted authority, ADMIN before USER."""
        return Authority.ADMIN if self.is_admin else Authority.USER
