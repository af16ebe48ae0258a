"""
web/forms.py -- Pydantic v2 models for HTML form submissions.

Form values arrive as strings (or not at all, for unchecked checkboxes), so
every field has a default matching an empty form and the validators accept
the HTML encodings. A default-constructed RegistrationForm is invalid on
purpose: the required text fields are empty.

field_errors() flattens a ValidationError into {field: [messages]} for the
template, which renders messages next to their inputs.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

from auth.models import GENDER_LABELS, Authority, SiteUser


class RegistrationForm(BaseModel):
    """Body of POST /register."""

    model_config = ConfigDict(extra="ignore", validate_default=True)

    username: str = Field(default="", min_length=2, max_length=20)
    password: str = Field(default="", min_length=4, max_length=255)
    email: EmailStr = ""
    gender: int = 0
    admin: bool = False
    authority: Authority = Authority.USER

    @field_validator("username", "email", mode="before")
    @classmethod
    def strip_text(cls, value):
        # Passwords are taken verbatim.
        return value.strip() if isinstance(value, str) else value

    @field_validator("gender")
    @classmethod
    def known_gender(cls, value: int) -> int:
        if value not in GENDER_LABELS:
            raise ValueError("Select one of the listed options")
        return value

    @field_validator("gender", mode="before")
    @classmethod
    def blank_gender(cls, value):
        return 0 if value in ("", None) else value

    @field_validator("admin", mode="before")
    @classmethod
    def checkbox(cls, value):
        # An unchecked box is absent; a checked one defaults to "on".
        return False if value in ("", None) else value

    @field_validator("authority", mode="before")
    @classmethod
    def blank_authority(cls, value):
        if value in ("", None):
            return Authority.USER
        return value.upper() if isinstance(value, str) else value

    def to_site_user(self) -> SiteUser:
        """Return an unsaved SiteUser carrying the plaintext password."""
        return SiteUser(
            username=self.username,
            password=self.password,
            email=str(self.email),
            gender=self.gender,
            is_admin=self.admin,
            authority=self.authority,
        )


def field_errors(exc: ValidationError) -> dict[str, list[str]]:
    """Group validation messages by their top-level field name."""
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "__all__"
        errors.setdefault(field, []).append(err["msg"])
    return errors
