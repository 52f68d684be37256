"""Input schemas for notification, option and schedule documents.

Notification requests arrive as YAML or JSON documents (one notification,
a batch, or a jobs file for the scheduler). They are validated with Pydantic
and converted into the immutable domain models. Validation failures become
``ValidationError`` with one issue per offending field.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Literal

from pydantic import (
    AliasChoices,
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from notification_relay.core.config import load_yaml_document
from notification_relay.core.exceptions import ValidationError
from notification_relay.core.triggers import TIME_PATTERN
from notification_relay.types import DispatchOptions, Frequency, Notification, ScheduleSpec

__all__ = [
    "MAX_BULK_NOTIFICATIONS",
    "MAX_TIMEOUT_SECONDS",
    "BulkRequestSchema",
    "DispatchRequest",
    "JobsFileSchema",
    "NotificationSchema",
    "OptionsSchema",
    "ScheduleSchema",
    "load_jobs_file",
    "load_request_file",
    "parse_jobs",
    "parse_request",
]

MAX_TITLE_LENGTH = 200
MAX_BODY_LENGTH = 2000
MAX_TOKENS = 500
MAX_PLAYER_IDS = 2000
MAX_BULK_NOTIFICATIONS = 100
MAX_TIMEOUT_SECONDS = 30.0


class NotificationSchema(BaseModel):
    """Schema for a single notification with its targeting fields."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: Annotated[str, Field(min_length=1, max_length=MAX_TITLE_LENGTH)]
    body: Annotated[str, Field(min_length=1, max_length=MAX_BODY_LENGTH)]
    image: AnyUrl | None = None
    data: dict[str, object] = {}

    # Token-based push
    token: str | None = None
    tokens: Annotated[list[str], Field(max_length=MAX_TOKENS)] = []
    topic: str | None = None
    android: dict[str, object] | None = None
    apns: dict[str, object] | None = None
    webpush: dict[str, object] | None = None

    # Segment-based push
    player_ids: Annotated[
        list[str],
        Field(
            max_length=MAX_PLAYER_IDS,
            validation_alias=AliasChoices("player_ids", "playerIds"),
        ),
    ] = []
    segments: list[str] = []

    # Pub/sub broadcast
    channel: str | None = None
    event: str | None = None

    def to_notification(self) -> Notification:
        return Notification(
            title=self.title,
            body=self.body,
            image=str(self.image) if self.image is not None else None,
            data=self.data,
            token=self.token,
            tokens=tuple(self.tokens),
            topic=self.topic,
            channel=self.channel,
            event=self.event,
            player_ids=tuple(self.player_ids),
            segments=tuple(self.segments),
            android=self.android,
            apns=self.apns,
            webpush=self.webpush,
        )


class OptionsSchema(BaseModel):
    """Schema for dispatch options."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    provider: str | None = None
    enable_failover: Annotated[
        bool,
        Field(validation_alias=AliasChoices("enable_failover", "enableFailover")),
    ] = True
    timeout_seconds: Annotated[
        float | None,
        Field(
            gt=0,
            le=MAX_TIMEOUT_SECONDS,
            validation_alias=AliasChoices("timeout_seconds", "timeout"),
            description="Overall dispatch timeout in seconds",
        ),
    ] = None

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, value: str | None) -> str | None:
        """Restrict explicit providers to installed plugins."""
        if value is None:
            return None
        # Import here to avoid circular dependency at module level
        from notification_relay.plugins.discovery import discover_plugins

        normalized = value.strip().lower()
        available = {plugin.identifier for plugin in discover_plugins()}
        if normalized not in available:
            msg = f"Unknown provider {value!r}. Available providers: {', '.join(sorted(available))}"
            raise ValueError(msg)
        return normalized

    def to_options(self) -> DispatchOptions:
        return DispatchOptions(
            provider=self.provider,
            enable_failover=self.enable_failover,
            timeout_seconds=self.timeout_seconds,
        )


class ScheduleSchema(BaseModel):
    """Schema for a time-of-day schedule.

    ``timezone`` may be omitted, in which case the scheduler's configured
    default applies.
    """

    model_config = ConfigDict(extra="forbid")

    time: str
    timezone: str | None = None
    frequency: Literal["once", "daily"] = "once"

    @field_validator("time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            msg = "Time must be in HH:MM format (24-hour)"
            raise ValueError(msg)
        return value

    def to_spec(self, default_timezone: str = "UTC") -> ScheduleSpec:
        return ScheduleSpec(
            time=self.time,
            timezone=default_timezone if self.timezone is None else self.timezone,
            frequency=Frequency(self.frequency),
        )


class BulkRequestSchema(BaseModel):
    """Request document: one notification or a batch, with optional schedule."""

    model_config = ConfigDict(extra="forbid")

    notification: NotificationSchema | None = None
    notifications: Annotated[
        list[NotificationSchema] | None,
        Field(min_length=1, max_length=MAX_BULK_NOTIFICATIONS),
    ] = None
    options: OptionsSchema = OptionsSchema()
    schedule: ScheduleSchema | None = None

    @model_validator(mode="after")
    def require_exactly_one_payload(self) -> BulkRequestSchema:
        if (self.notification is None) == (self.notifications is None):
            msg = "Provide exactly one of 'notification' or 'notifications'"
            raise ValueError(msg)
        return self


class ScheduledJobSchema(BulkRequestSchema):
    """One entry of a jobs file: a notification or a batch that must carry a schedule."""

    schedule: ScheduleSchema  # pyright: ignore[reportIncompatibleVariableOverride]


class JobsFileSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    jobs: Annotated[list[ScheduledJobSchema], Field(min_length=1)]


@dataclass(slots=True, frozen=True)
class DispatchRequest:
    """Validated request converted to domain models."""

    notifications: tuple[Notification, ...]
    options: DispatchOptions
    schedule: ScheduleSpec | None = None
    bulk: bool = False


def _to_validation_error(error: PydanticValidationError, header: str) -> ValidationError:
    issues = [
        f"{'.'.join(str(loc) for loc in detail['loc']) or '<root>'}: {detail['msg']}" for detail in error.errors()
    ]
    return ValidationError(f"{header}: {'; '.join(issues)}", issues=issues)


def _to_request(request: BulkRequestSchema, default_timezone: str) -> DispatchRequest:
    items = request.notifications or ([request.notification] if request.notification else [])
    return DispatchRequest(
        notifications=tuple(item.to_notification() for item in items),
        options=request.options.to_options(),
        schedule=request.schedule.to_spec(default_timezone) if request.schedule else None,
        bulk=request.notifications is not None,
    )


def parse_request(raw: object, *, default_timezone: str = "UTC") -> DispatchRequest:
    """Validate a request document.

    Raises:
        ValidationError: If the document does not match the request schema
    """
    try:
        request = BulkRequestSchema.model_validate(raw)
    except PydanticValidationError as e:
        raise _to_validation_error(e, "Invalid notification request") from e

    return _to_request(request, default_timezone)


def parse_jobs(raw: object, *, default_timezone: str = "UTC") -> tuple[DispatchRequest, ...]:
    """Validate a jobs document into one scheduled request per job.

    A document without a ``jobs`` list is read as a single scheduled request,
    so a bulk request file with a ``schedule`` can be served as it is.

    Raises:
        ValidationError: If any job entry is invalid or the request has no schedule
    """
    if isinstance(raw, Mapping) and "jobs" not in raw:
        request = parse_request(raw, default_timezone=default_timezone)
        if request.schedule is None:
            msg = "Invalid jobs file: schedule: Field required"
            raise ValidationError(msg, issues=("schedule: Field required",))
        return (request,)

    try:
        document = JobsFileSchema.model_validate(raw)
    except PydanticValidationError as e:
        raise _to_validation_error(e, "Invalid jobs file") from e

    return tuple(_to_request(job, default_timezone) for job in document.jobs)


def _load_mapping(path: Path, description: str) -> Mapping[str, object]:
    raw = load_yaml_document(path, description=description)
    if not isinstance(raw, dict):
        msg = f"The {description} {path} must contain a mapping at the top level"
        raise ValidationError(msg, issues=("<root>",))
    return raw  # pyright: ignore[reportUnknownVariableType]  # YAML boundary


def load_request_file(path: Path, *, default_timezone: str = "UTC") -> DispatchRequest:
    """Load and validate a YAML or JSON notification request file.

    Raises:
        ConfigurationError: If the file cannot be read or parsed
        ValidationError: If the document is invalid
    """
    return parse_request(_load_mapping(path, "notification file"), default_timezone=default_timezone)


def load_jobs_file(path: Path, *, default_timezone: str = "UTC") -> tuple[DispatchRequest, ...]:
    """Load and validate a YAML or JSON jobs file for the scheduler.

    Raises:
        ConfigurationError: If the file cannot be read or parsed
        ValidationError: If any job is invalid
    """
    return parse_jobs(_load_mapping(path, "jobs file"), default_timezone=default_timezone)
