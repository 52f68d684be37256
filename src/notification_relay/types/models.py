"""Data models for notification-relay.

This module defines immutable dataclasses used throughout the application
for type-safe data transfer between the dispatcher, the scheduler and the
provider plugins.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType


def _freeze_mapping(value: Mapping[str, object] | None) -> Mapping[str, object] | None:
    if value is None:
        return None
    return MappingProxyType(dict(value))


@dataclass(slots=True, frozen=True)
class Notification:
    """Immutable notification payload with provider targeting fields.

    Title and body are the content every provider delivers. The remaining
    fields target a specific channel: device tokens and topics for token-based
    push, player ids and segments for segment-based push, channel and event for
    pub/sub broadcast.
    """

    title: str
    body: str
    image: str | None = None
    data: Mapping[str, object] = field(default_factory=dict)
    token: str | None = None
    tokens: tuple[str, ...] = ()
    topic: str | None = None
    channel: str | None = None
    event: str | None = None
    player_ids: tuple[str, ...] = ()
    segments: tuple[str, ...] = ()
    android: Mapping[str, object] | None = None
    apns: Mapping[str, object] | None = None
    webpush: Mapping[str, object] | None = None

    def __post_init__(self) -> None:
        # Copy caller-owned containers so later mutation cannot leak in
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))
        object.__setattr__(self, "tokens", tuple(self.tokens))
        object.__setattr__(self, "player_ids", tuple(self.player_ids))
        object.__setattr__(self, "segments", tuple(self.segments))
        object.__setattr__(self, "android", _freeze_mapping(self.android))
        object.__setattr__(self, "apns", _freeze_mapping(self.apns))
        object.__setattr__(self, "webpush", _freeze_mapping(self.webpush))

    def preview(self, limit: int) -> str:
        """Return the body truncated to ``limit`` characters."""
        if len(self.body) <= limit:
            return self.body
        return f"{self.body[:limit]}..."


@dataclass(slots=True, frozen=True)
class DispatchOptions:
    """Caller options for a single dispatch."""

    provider: str | None = None
    enable_failover: bool = True
    timeout_seconds: float | None = None


class Frequency(StrEnum):
    """How often a scheduled notification fires."""

    ONCE = "once"
    DAILY = "daily"


@dataclass(slots=True, frozen=True)
class ScheduleSpec:
    """Time-of-day schedule descriptor.

    ``time`` is a 24-hour ``HH:MM`` string interpreted in ``timezone``.
    Values are validated by ``core.triggers.parse_schedule``.
    """

    time: str
    timezone: str = "UTC"
    frequency: Frequency | str = Frequency.ONCE


@dataclass(slots=True, frozen=True)
class DeliveryReceipt:
    """Proof of a successful delivery returned by a provider."""

    provider: str
    sent_at: datetime
    message_id: str | None = None
    details: Mapping[str, object] = field(default_factory=dict)


class OutcomeStatus(StrEnum):
    """Result of trying a single provider during a dispatch."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


SKIP_REASON_DISABLED = "disabled"
SKIP_REASON_UNSUPPORTED = "unsupported"


@dataclass(slots=True, frozen=True)
class ProviderOutcome:
    """Per-provider record of a dispatch attempt."""

    provider: str
    status: OutcomeStatus
    reason: str | None = None
    receipt: DeliveryReceipt | None = None

    @property
    def skipped(self) -> bool:
        return self.status is OutcomeStatus.SKIPPED


@dataclass(slots=True, frozen=True)
class DispatchResult:
    """Aggregate result of a successful dispatch.

    ``outcomes`` lists every provider considered before success, in
    attempt order, ending with the provider that delivered.
    """

    success: bool
    used_provider: str | None
    outcomes: tuple[ProviderOutcome, ...]
    total_providers: int
    successful: int
    failed: int
    skipped: int
    receipt: DeliveryReceipt | None = None


@dataclass(slots=True, frozen=True)
class BulkItemResult:
    """Outcome of one notification within a bulk dispatch."""

    index: int
    title: str
    body_preview: str
    success: bool
    result: DispatchResult | None = None
    error: str | None = None


@dataclass(slots=True, frozen=True)
class BulkDispatchResult:
    """Aggregate result of a sequential bulk dispatch."""

    total: int
    successful: int
    failed: int
    results: tuple[BulkItemResult, ...]


@dataclass(slots=True, frozen=True)
class ProviderInfo:
    """Management view of a configured provider."""

    name: str
    enabled: bool
    priority: int


@dataclass(slots=True, frozen=True)
class ProviderCompatibility:
    """Whether one provider would accept a notification."""

    name: str
    enabled: bool
    valid: bool
    can_handle: bool
    error: str | None = None


@dataclass(slots=True, frozen=True)
class CompatibilityReport:
    """Dry compatibility check of a notification against every provider."""

    valid: bool
    providers: tuple[ProviderCompatibility, ...]

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(f"{entry.name}: {entry.error}" for entry in self.providers if entry.error)


class JobState(StrEnum):
    """Lifecycle states of a scheduled job."""

    PENDING = "pending"
    ARMED = "armed"
    FIRED = "fired"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class ScheduleReceipt:
    """Acknowledgement returned when a job is scheduled."""

    job_id: str
    scheduled_for: datetime
    frequency: Frequency
    timezone: str


@dataclass(slots=True, frozen=True)
class JobSnapshot:
    """Read-only view of a scheduled job."""

    job_id: str
    title: str
    body_preview: str
    time: str
    timezone: str
    frequency: Frequency
    state: JobState
    created_at: datetime
    scheduled_for: datetime
    options: DispatchOptions
    run_count: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None


@dataclass(slots=True, frozen=True)
class BulkScheduleItem:
    """Outcome of scheduling one notification within a bulk request."""

    index: int
    title: str
    success: bool
    receipt: ScheduleReceipt | None = None
    error: str | None = None


@dataclass(slots=True)
class Response:
    """HTTP response.

    Represents an HTTP response with status code, body, and headers.
    """

    status: int
    body: Mapping[str, object]
    headers: Mapping[str, str]
