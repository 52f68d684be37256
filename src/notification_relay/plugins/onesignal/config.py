"""OneSignal provider configuration schema."""

from __future__ import annotations

from typing import Annotated, Final
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DEFAULT_API_URL: Final[str] = "https://onesignal.com/api/v1"


class OneSignalConfig(BaseModel):
    """Pydantic schema for OneSignal REST API configuration.

    Both ``app_id``/``rest_api_key`` and the dashboard's camelCase spelling
    (``appId``/``restApiKey``) are accepted.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    app_id: Annotated[
        str | None,
        Field(
            description="OneSignal application id",
            validation_alias=AliasChoices("app_id", "appId"),
        ),
    ] = None
    rest_api_key: Annotated[
        str | None,
        Field(
            description="REST API key sent as Basic authorization",
            validation_alias=AliasChoices("rest_api_key", "restApiKey"),
        ),
    ] = None
    api_url: Annotated[
        str,
        Field(
            description="Base URL of the OneSignal REST API",
            validation_alias=AliasChoices("api_url", "apiUrl"),
        ),
    ] = DEFAULT_API_URL

    @field_validator("app_id", "rest_api_key", mode="before")
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        """Treat empty strings like missing values."""
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, value: str) -> str:
        """Require an HTTPS API URL without a trailing slash."""
        cleaned = value.strip().rstrip("/")
        if urlparse(cleaned).scheme.lower() != "https":
            msg = "api_url must use HTTPS"
            raise ValueError(msg)
        return cleaned

    def missing_fields(self) -> tuple[str, ...]:
        """Return the required settings that are not set."""
        return tuple(name for name in ("app_id", "rest_api_key") if getattr(self, name) is None)
