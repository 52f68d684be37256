"""Pusher provider configuration schema."""

from __future__ import annotations

import re
from typing import Annotated, Final

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_CLUSTER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9-]+$")
_REQUIRED_FIELDS: Final[tuple[str, ...]] = ("app_id", "key", "secret", "cluster")


class PusherConfig(BaseModel):
    """Pydantic schema for Pusher Channels application credentials."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    app_id: Annotated[
        str | None,
        Field(
            description="Pusher application id",
            validation_alias=AliasChoices("app_id", "appId"),
        ),
    ] = None
    key: Annotated[
        str | None,
        Field(description="Application key (public)"),
    ] = None
    secret: Annotated[
        str | None,
        Field(description="Application secret used for request signing"),
    ] = None
    cluster: Annotated[
        str | None,
        Field(description="Cluster name such as 'eu' or 'mt1'"),
    ] = None
    use_tls: Annotated[
        bool,
        Field(
            description="Use HTTPS for the events API",
            validation_alias=AliasChoices("use_tls", "useTLS"),
        ),
    ] = True

    @field_validator("app_id", mode="before")
    @classmethod
    def coerce_app_id(cls, value: object) -> object:
        """Accept numeric app ids from YAML."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("app_id", "key", "secret", "cluster", mode="before")
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        """Treat empty strings like missing values."""
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("cluster")
    @classmethod
    def validate_cluster(cls, value: str | None) -> str | None:
        """Cluster names form part of the API host name."""
        if value is None:
            return None
        normalized = value.lower()
        if not _CLUSTER_PATTERN.match(normalized):
            msg = f"Invalid Pusher cluster name: {value!r}"
            raise ValueError(msg)
        return normalized

    def missing_fields(self) -> tuple[str, ...]:
        """Return the required settings that are not set."""
        return tuple(name for name in _REQUIRED_FIELDS if getattr(self, name) is None)
