"""Exception hierarchy for dispatch and scheduling failures.

Validation and schedule-format errors are raised before any side effect.
Per-provider send failures are recovered by failover and only surface,
aggregated, when every candidate provider has failed.
"""

from __future__ import annotations

from collections.abc import Iterable

from notification_relay.types.models import OutcomeStatus, ProviderOutcome

__all__ = [
    "AllProvidersFailedError",
    "DispatchTimeoutError",
    "JobNotFoundError",
    "NotificationRelayError",
    "ProviderNotFoundError",
    "ProviderSendError",
    "ProviderUnsupportedError",
    "ScheduleFormatError",
    "SchedulerNotRunningError",
    "ValidationError",
]


class NotificationRelayError(Exception):
    """Base exception for all dispatch and scheduling errors."""


class ValidationError(NotificationRelayError):
    """Raised when notification content is malformed."""

    issues: tuple[str, ...]

    def __init__(self, message: str, *, issues: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.issues = tuple(issues)


class ScheduleFormatError(NotificationRelayError):
    """Raised when a schedule has a bad time, timezone or frequency."""


class ProviderNotFoundError(NotificationRelayError):
    """Raised when an explicitly named provider is unknown or disabled."""

    provider: str

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(message or f"Provider {provider} not found or not enabled")
        self.provider = provider


class ProviderUnsupportedError(NotificationRelayError):
    """Raised when a provider cannot handle the notification's targeting fields."""

    provider: str

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(message or f"Provider {provider} cannot handle this notification type")
        self.provider = provider


class ProviderSendError(NotificationRelayError):
    """Raised when a provider fails to deliver a notification."""

    provider: str
    detail: str

    def __init__(
        self,
        provider: str,
        detail: str,
        *,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(f"{provider} send failed: {detail}")
        self.provider = provider
        self.detail = detail
        if cause is not None:
            self.__cause__ = cause


class AllProvidersFailedError(NotificationRelayError):
    """Raised when failover exhausts every provider without a success.

    ``outcomes`` holds every failure and skip in attempt order;
    ``failures`` narrows it to providers that were actually attempted.
    """

    outcomes: tuple[ProviderOutcome, ...]

    def __init__(self, outcomes: Iterable[ProviderOutcome]) -> None:
        self.outcomes = tuple(outcomes)
        if self.outcomes:
            summary = "; ".join(f"{outcome.provider}: {outcome.reason}" for outcome in self.outcomes)
            message = f"All providers failed: {summary}"
        else:
            message = "No notification providers available"
        super().__init__(message)

    @property
    def failures(self) -> tuple[ProviderOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.status is OutcomeStatus.FAILED)

    @property
    def skipped(self) -> tuple[ProviderOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.status is OutcomeStatus.SKIPPED)


class DispatchTimeoutError(NotificationRelayError):
    """Raised when a dispatch exceeds its caller-supplied timeout."""

    timeout_seconds: float

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Notification dispatch timed out after {timeout_seconds:.2f}s")
        self.timeout_seconds = timeout_seconds


class JobNotFoundError(NotificationRelayError):
    """Raised when a scheduled job id is unknown."""

    job_id: str

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Scheduled job not found: {job_id}")
        self.job_id = job_id


class SchedulerNotRunningError(NotificationRelayError):
    """Raised when scheduling is attempted on a stopped scheduler."""
