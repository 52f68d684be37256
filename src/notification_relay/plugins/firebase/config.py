"""Firebase provider configuration schema."""

from __future__ import annotations

from typing import Annotated, Final
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TOKEN_URI: Final[str] = "https://oauth2.googleapis.com/token"

_REQUIRED_FIELDS: Final[tuple[str, ...]] = ("project_id", "private_key", "client_email")


class FirebaseConfig(BaseModel):
    """Pydantic schema for a Firebase service account.

    The schema accepts a service-account JSON document as downloaded from the
    Firebase console; keys it does not use (``type``, ``client_id`` ...) are
    ignored. Required credentials are optional at the schema level so that an
    incomplete section leaves the provider disabled instead of aborting startup.
    """

    model_config = ConfigDict(extra="ignore")

    project_id: Annotated[
        str | None,
        Field(description="Firebase project identifier"),
    ] = None
    client_email: Annotated[
        str | None,
        Field(description="Service account e-mail used as the JWT issuer"),
    ] = None
    private_key: Annotated[
        str | None,
        Field(description="PEM encoded RSA private key of the service account"),
    ] = None
    private_key_id: Annotated[
        str | None,
        Field(description="Key id placed in the JWT header"),
    ] = None
    token_uri: Annotated[
        str,
        Field(description="OAuth2 token endpoint"),
    ] = DEFAULT_TOKEN_URI

    @field_validator("project_id", "client_email", "private_key_id", mode="before")
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        """Treat empty strings like missing values."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("private_key", mode="before")
    @classmethod
    def normalize_private_key(cls, value: object) -> object:
        """Expand escaped newlines from environment variables."""
        if not isinstance(value, str):
            return value
        normalized = value.replace("\\n", "\n").strip()
        return normalized or None

    @field_validator("token_uri")
    @classmethod
    def validate_token_uri(cls, value: str) -> str:
        """Require an HTTPS token endpoint."""
        cleaned = value.strip()
        if urlparse(cleaned).scheme.lower() != "https":
            msg = "token_uri must use HTTPS"
            raise ValueError(msg)
        return cleaned

    def missing_fields(self) -> tuple[str, ...]:
        """Return the required credentials that are not set."""
        return tuple(name for name in _REQUIRED_FIELDS if getattr(self, name) is None)
