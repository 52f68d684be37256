"""Type definitions and protocols for notification-relay.

This package provides:
- Data models (immutable dataclasses)
- Protocol definitions (structural subtyping interfaces)
- Type aliases (PEP 695 modern syntax)
"""

from notification_relay.types.aliases import (
    Clock,
    IdentifierFactory,
    ProviderConfig,
    Sleeper,
)
from notification_relay.types.models import (
    SKIP_REASON_DISABLED,
    SKIP_REASON_UNSUPPORTED,
    BulkDispatchResult,
    BulkItemResult,
    BulkScheduleItem,
    CompatibilityReport,
    DeliveryReceipt,
    DispatchOptions,
    DispatchResult,
    Frequency,
    JobSnapshot,
    JobState,
    Notification,
    OutcomeStatus,
    ProviderCompatibility,
    ProviderInfo,
    ProviderOutcome,
    Response,
    ScheduleReceipt,
    ScheduleSpec,
)
from notification_relay.types.protocols import (
    DeliveryProvider,
    Dispatcher,
    HTTPClient,
)

__all__ = [
    # Type aliases
    "Clock",
    "IdentifierFactory",
    "ProviderConfig",
    "Sleeper",
    # Data models
    "SKIP_REASON_DISABLED",
    "SKIP_REASON_UNSUPPORTED",
    "BulkDispatchResult",
    "BulkItemResult",
    "BulkScheduleItem",
    "CompatibilityReport",
    "DeliveryReceipt",
    "DispatchOptions",
    "DispatchResult",
    "Frequency",
    "JobSnapshot",
    "JobState",
    "Notification",
    "OutcomeStatus",
    "ProviderCompatibility",
    "ProviderInfo",
    "ProviderOutcome",
    "Response",
    "ScheduleReceipt",
    "ScheduleSpec",
    # Protocols
    "DeliveryProvider",
    "Dispatcher",
    "HTTPClient",
]
