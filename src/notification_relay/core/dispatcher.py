"""Notification dispatcher selecting one provider with priority failover.

Providers are tried one at a time in ascending priority. Disabled providers
and providers that cannot handle the notification's targeting are skipped;
a provider whose retries are exhausted is recorded as failed and the next
one is tried. The first success ends the dispatch, so a notification is
delivered through at most one provider.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from uuid import uuid4

from notification_relay.core.exceptions import (
    AllProvidersFailedError,
    DispatchTimeoutError,
    NotificationRelayError,
    ProviderNotFoundError,
    ProviderSendError,
    ProviderUnsupportedError,
    ValidationError,
)
from notification_relay.plugins.registry import ProviderRegistry
from notification_relay.types import (
    SKIP_REASON_DISABLED,
    SKIP_REASON_UNSUPPORTED,
    BulkDispatchResult,
    BulkItemResult,
    CompatibilityReport,
    DeliveryProvider,
    DispatchOptions,
    DispatchResult,
    IdentifierFactory,
    Notification,
    OutcomeStatus,
    ProviderCompatibility,
    ProviderInfo,
    ProviderOutcome,
)
from notification_relay.utils.logging import (
    get_correlation_id,
    get_logger,
    log_with_context,
    reset_correlation_id,
    set_correlation_id,
)
from notification_relay.utils.sanitization import sanitize_exception

__all__ = ["BULK_PREVIEW_LENGTH", "NotificationDispatcher"]

BULK_PREVIEW_LENGTH = 50


class NotificationDispatcher:
    """Deliver notifications through exactly one provider with failover."""

    def __init__(
        self,
        registry: ProviderRegistry[DeliveryProvider],
        *,
        correlation_id_factory: IdentifierFactory | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._registry: ProviderRegistry[DeliveryProvider] = registry
        self._correlation_id_factory: IdentifierFactory = correlation_id_factory or (lambda: uuid4().hex)
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @property
    def registry(self) -> ProviderRegistry[DeliveryProvider]:
        return self._registry

    async def dispatch(
        self,
        notification: Notification,
        options: DispatchOptions | None = None,
    ) -> DispatchResult:
        """Deliver ``notification`` through one provider.

        Args:
            notification: Notification to deliver
            options: Explicit provider, failover toggle and overall timeout

        Returns:
            Result naming the provider that delivered and every outcome before it

        Raises:
            ValidationError: If the notification has neither title nor body
            ProviderNotFoundError: If an explicit provider is unknown or disabled
            ProviderUnsupportedError: If an explicit provider cannot handle it
            ProviderSendError: If an explicit provider fails
            AllProvidersFailedError: If no provider succeeds
            DispatchTimeoutError: If ``options.timeout_seconds`` elapses first
        """
        opts = options or DispatchOptions()
        if not notification.title and not notification.body:
            raise ValidationError("Notification must have a title or body", issues=("title", "body"))

        token = None
        if get_correlation_id() is None:
            token = set_correlation_id(self._correlation_id_factory())
        try:
            if opts.timeout_seconds is None:
                return await self._dispatch(notification, opts)
            try:
                async with asyncio.timeout(opts.timeout_seconds):
                    return await self._dispatch(notification, opts)
            except TimeoutError as exc:
                log_with_context(
                    self._logger,
                    logging.WARNING,
                    "Notification dispatch timed out",
                    extra={"timeout_seconds": opts.timeout_seconds},
                )
                raise DispatchTimeoutError(opts.timeout_seconds) from exc
        finally:
            if token is not None:
                reset_correlation_id(token)

    async def _dispatch(self, notification: Notification, options: DispatchOptions) -> DispatchResult:
        providers = self._registry.get_all()
        log_with_context(
            self._logger,
            logging.INFO,
            "Dispatching notification",
            extra={
                "title": notification.title,
                "requested_provider": options.provider,
                "failover": options.enable_failover,
                "provider_count": len(providers),
            },
        )
        if options.provider:
            return await self._dispatch_explicit(notification, options.provider, total=len(providers))
        return await self._dispatch_with_failover(
            notification,
            providers,
            enable_failover=options.enable_failover,
        )

    async def _dispatch_explicit(self, notification: Notification, name: str, *, total: int) -> DispatchResult:
        provider = self._registry.get(name)
        if provider is None or not provider.is_enabled():
            raise ProviderNotFoundError(name)
        if not provider.can_handle(notification):
            raise ProviderUnsupportedError(provider.display_name)

        try:
            receipt = await provider.send_with_retry(notification)
        except ProviderSendError as exc:
            self._log_provider_failure(provider, exc)
            if exc.provider == provider.display_name:
                raise
            raise ProviderSendError(provider.display_name, exc.detail, cause=exc) from exc

        outcome = ProviderOutcome(
            provider=provider.display_name,
            status=OutcomeStatus.SUCCEEDED,
            receipt=receipt,
        )
        self._log_provider_success(provider)
        return DispatchResult(
            success=True,
            used_provider=provider.display_name,
            outcomes=(outcome,),
            total_providers=total,
            successful=1,
            failed=0,
            skipped=0,
            receipt=receipt,
        )

    async def _dispatch_with_failover(
        self,
        notification: Notification,
        providers: Sequence[DeliveryProvider],
        *,
        enable_failover: bool,
    ) -> DispatchResult:
        outcomes: list[ProviderOutcome] = []
        for provider in providers:
            if not provider.is_enabled():
                outcomes.append(self._skip(provider, SKIP_REASON_DISABLED))
                continue
            if not provider.can_handle(notification):
                outcomes.append(self._skip(provider, SKIP_REASON_UNSUPPORTED))
                continue

            try:
                receipt = await provider.send_with_retry(notification)
            except (ProviderSendError, ValidationError) as exc:
                self._log_provider_failure(provider, exc)
                outcomes.append(
                    ProviderOutcome(
                        provider=provider.display_name,
                        status=OutcomeStatus.FAILED,
                        reason=_failure_reason(exc),
                    )
                )
                if not enable_failover:
                    break
                continue

            self._log_provider_success(provider)
            outcomes.append(
                ProviderOutcome(
                    provider=provider.display_name,
                    status=OutcomeStatus.SUCCEEDED,
                    receipt=receipt,
                )
            )
            return DispatchResult(
                success=True,
                used_provider=provider.display_name,
                outcomes=tuple(outcomes),
                total_providers=len(providers),
                successful=1,
                failed=_count(outcomes, OutcomeStatus.FAILED),
                skipped=_count(outcomes, OutcomeStatus.SKIPPED),
                receipt=receipt,
            )

        error = AllProvidersFailedError(outcomes)
        log_with_context(
            self._logger,
            logging.ERROR,
            "All providers failed",
            extra={
                "failed": len(error.failures),
                "skipped": len(error.skipped),
                "provider_count": len(providers),
            },
        )
        raise error

    async def dispatch_bulk(
        self,
        notifications: Iterable[Notification],
        options: DispatchOptions | None = None,
    ) -> BulkDispatchResult:
        """Dispatch notifications one after another, capturing each outcome.

        A failure on one notification never aborts the batch; results keep
        the input order and indices.
        """
        results: list[BulkItemResult] = []
        for index, notification in enumerate(notifications):
            preview = notification.preview(BULK_PREVIEW_LENGTH)
            try:
                result = await self.dispatch(notification, options)
            except NotificationRelayError as exc:
                results.append(
                    BulkItemResult(
                        index=index,
                        title=notification.title,
                        body_preview=preview,
                        success=False,
                        error=str(exc),
                    )
                )
                continue
            results.append(
                BulkItemResult(
                    index=index,
                    title=notification.title,
                    body_preview=preview,
                    success=True,
                    result=result,
                )
            )

        successful = sum(1 for item in results if item.success)
        log_with_context(
            self._logger,
            logging.INFO,
            "Bulk dispatch completed",
            extra={"total": len(results), "successful": successful},
        )
        return BulkDispatchResult(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            results=tuple(results),
        )

    def list_providers(self) -> tuple[ProviderInfo, ...]:
        """Return name, enable state and priority of every provider."""
        return tuple(
            ProviderInfo(name=provider.display_name, enabled=provider.is_enabled(), priority=provider.priority)
            for provider in self._registry.get_all()
        )

    def set_provider_enabled(self, name: str, enabled: bool) -> bool:
        """Enable or disable a provider by case-insensitive name.

        Raises:
            ProviderNotFoundError: If no provider matches ``name``
        """
        provider = self._registry.get(name)
        if provider is None:
            raise ProviderNotFoundError(name, f"Provider {name} not found")
        provider.set_enabled(enabled)
        return True

    def check_compatibility(self, notification: Notification) -> CompatibilityReport:
        """Check a notification against every provider without sending it."""
        entries: list[ProviderCompatibility] = []
        for provider in self._registry.get_all():
            enabled = provider.is_enabled()
            error: str | None = None
            try:
                provider.validate(notification)
            except ValidationError as exc:
                error = str(exc)
            can_handle = provider.can_handle(notification)
            entries.append(
                ProviderCompatibility(
                    name=provider.display_name,
                    enabled=enabled,
                    valid=error is None,
                    can_handle=can_handle,
                    error=error,
                )
            )
        valid = any(entry.enabled and entry.valid and entry.can_handle for entry in entries)
        return CompatibilityReport(valid=valid, providers=tuple(entries))

    def _skip(self, provider: DeliveryProvider, reason: str) -> ProviderOutcome:
        log_with_context(
            self._logger,
            logging.DEBUG,
            f"Skipping provider {provider.display_name}: {reason}",
            extra={"provider": provider.identifier, "reason": reason},
        )
        return ProviderOutcome(provider=provider.display_name, status=OutcomeStatus.SKIPPED, reason=reason)

    def _log_provider_success(self, provider: DeliveryProvider) -> None:
        log_with_context(
            self._logger,
            logging.INFO,
            f"Notification delivered via {provider.display_name}",
            extra={"provider": provider.identifier, "priority": provider.priority},
        )

    def _log_provider_failure(self, provider: DeliveryProvider, error: BaseException) -> None:
        log_with_context(
            self._logger,
            logging.WARNING,
            f"Provider {provider.display_name} failed",
            extra={
                "provider": provider.identifier,
                "error_message": sanitize_exception(error),
                "exception_type": type(error).__name__,
            },
        )


def _failure_reason(error: NotificationRelayError) -> str:
    if isinstance(error, ProviderSendError):
        return error.detail
    return str(error)


def _count(outcomes: Iterable[ProviderOutcome], status: OutcomeStatus) -> int:
    return sum(1 for outcome in outcomes if outcome.status is status)

