"""In-process scheduler deferring notification dispatch to a time of day.

Each job owns one asyncio trigger task that sleeps until the job's next firing
instant and then hands the notification to a ``Dispatcher``. ``once`` jobs are
removed after their single firing; ``daily`` jobs are re-armed for the same
local time on the next day. Jobs live only in memory.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from notification_relay.core.exceptions import (
    JobNotFoundError,
    NotificationRelayError,
    SchedulerNotRunningError,
    ValidationError,
)
from notification_relay.core.triggers import TriggerRule, next_occurrence, parse_schedule
from notification_relay.providers.base import utc_now
from notification_relay.types import (
    BulkScheduleItem,
    Clock,
    Dispatcher,
    DispatchOptions,
    Frequency,
    IdentifierFactory,
    JobSnapshot,
    JobState,
    Notification,
    ScheduleReceipt,
    ScheduleSpec,
    Sleeper,
)
from notification_relay.utils.logging import (
    get_logger,
    log_with_context,
    reset_correlation_id,
    set_correlation_id,
)
from notification_relay.utils.sanitization import sanitize_exception

__all__ = ["JOB_PREVIEW_LENGTH", "NotificationScheduler"]

JOB_PREVIEW_LENGTH = 100
_MAX_ID_ATTEMPTS = 10
_RECENT_ID_WINDOW = 1024

logger = get_logger(__name__)


@dataclass(slots=True)
class _Job:
    job_id: str
    notification: Notification
    rule: TriggerRule
    options: DispatchOptions
    dispatcher: Dispatcher
    created_at: datetime
    scheduled_for: datetime
    state: JobState = JobState.PENDING
    run_count: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None
    task: asyncio.Task[None] | None = field(default=None, repr=False)
    loop: asyncio.AbstractEventLoop | None = field(default=None, repr=False)

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            job_id=self.job_id,
            title=self.notification.title,
            body_preview=self.notification.preview(JOB_PREVIEW_LENGTH),
            time=self.rule.time,
            timezone=self.rule.timezone,
            frequency=self.rule.frequency,
            state=self.state,
            created_at=self.created_at,
            scheduled_for=self.scheduled_for,
            options=self.options,
            run_count=self.run_count,
            last_run_at=self.last_run_at,
            last_error=self.last_error,
        )


def _default_job_id(clock: Clock) -> str:
    millis = int(clock().timestamp() * 1000)
    return f"notif_{millis}_{secrets.token_hex(5)[:9]}"


class NotificationScheduler:
    """Registry of scheduled notification jobs and their trigger tasks.

    The registry is guarded by a re-entrant lock so snapshots and
    cancellation are safe from any thread; trigger tasks always run on the
    event loop that was running when the job was scheduled.
    """

    def __init__(
        self,
        *,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
        id_factory: IdentifierFactory | None = None,
    ) -> None:
        self._clock: Clock = clock
        self._sleep: Sleeper = sleep
        self._id_factory: IdentifierFactory = id_factory or (lambda: _default_job_id(clock))
        self._lock: threading.RLock = threading.RLock()
        self._jobs: dict[str, _Job] = {}
        self._recent_ids: deque[str] = deque(maxlen=_RECENT_ID_WINDOW)
        self._inflight: set[asyncio.Future[None]] = set()
        self._running: bool = False

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
        logger.info("Notification scheduler started")

    def stop(self) -> None:
        """Disarm every trigger and clear the registry.

        Firings already in progress complete; use ``aclose`` to wait for them.
        """
        with self._lock:
            was_running = self._running
            self._running = False
            jobs = list(self._jobs.values())
            self._jobs.clear()
        for job in jobs:
            job.state = JobState.CANCELLED
            self._disarm(job)
        if was_running:
            log_with_context(
                logger,
                logging.INFO,
                "Notification scheduler stopped",
                extra={"cancelled_jobs": len(jobs)},
            )

    async def aclose(self) -> None:
        """Stop the scheduler and wait for in-flight firings to finish."""
        with self._lock:
            tasks = [job.task for job in self._jobs.values() if job.task is not None]
        self.stop()
        pending = [*tasks, *self._inflight]
        if pending:
            _ = await asyncio.gather(*pending, return_exceptions=True)

    def schedule(
        self,
        notification: Notification,
        spec: ScheduleSpec,
        dispatcher: Dispatcher,
        options: DispatchOptions | None = None,
    ) -> ScheduleReceipt:
        """Register a job and arm its trigger.

        Must be called while an event loop is running. Nothing is registered
        when validation fails.

        Args:
            notification: Notification to dispatch when the trigger fires
            spec: Time of day, timezone and frequency
            dispatcher: Dispatcher invoked at firing time
            options: Dispatch options forwarded on every firing

        Returns:
            Job id, first firing instant, frequency and timezone

        Raises:
            SchedulerNotRunningError: If the scheduler has not been started
            ScheduleFormatError: If the schedule is malformed
            ValidationError: If the notification has neither title nor body
            RuntimeError: If no event loop is running
        """
        if not self.is_running:
            raise SchedulerNotRunningError("Scheduler service is not running")
        rule = parse_schedule(spec)
        if not notification.title and not notification.body:
            raise ValidationError("Notification must have a title or body", issues=("title", "body"))
        loop = asyncio.get_running_loop()

        created_at = self._clock()
        job = _Job(
            job_id="",
            notification=notification,
            rule=rule,
            options=options or DispatchOptions(),
            dispatcher=dispatcher,
            created_at=created_at,
            scheduled_for=next_occurrence(rule, created_at),
            loop=loop,
        )
        with self._lock:
            job.job_id = self._unique_id()
            self._jobs[job.job_id] = job
            job.task = loop.create_task(self._run_job(job), name=f"notification-job-{job.job_id}")
            job.state = JobState.ARMED

        log_with_context(
            logger,
            logging.INFO,
            "Notification scheduled",
            extra={
                "job_id": job.job_id,
                "scheduled_for": job.scheduled_for.isoformat(),
                "frequency": rule.frequency.value,
                "timezone": rule.timezone,
            },
        )
        return ScheduleReceipt(
            job_id=job.job_id,
            scheduled_for=job.scheduled_for,
            frequency=rule.frequency,
            timezone=rule.timezone,
        )

    def schedule_bulk(
        self,
        notifications: Iterable[Notification],
        spec: ScheduleSpec,
        dispatcher: Dispatcher,
        options: DispatchOptions | None = None,
    ) -> tuple[BulkScheduleItem, ...]:
        """Schedule one job per notification with a shared schedule.

        The schedule itself is validated once up front; afterwards each item
        succeeds or fails on its own.
        """
        if not self.is_running:
            raise SchedulerNotRunningError("Scheduler service is not running")
        _ = parse_schedule(spec)

        items: list[BulkScheduleItem] = []
        for index, notification in enumerate(notifications):
            try:
                receipt = self.schedule(notification, spec, dispatcher, options)
            except NotificationRelayError as exc:
                items.append(BulkScheduleItem(index=index, title=notification.title, success=False, error=str(exc)))
                continue
            items.append(BulkScheduleItem(index=index, title=notification.title, success=True, receipt=receipt))
        return tuple(items)

    def cancel(self, job_id: str) -> bool:
        """Disarm and remove a job. Returns False for unknown ids.

        A firing already in progress is not interrupted.
        """
        with self._lock:
            job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        job.state = JobState.CANCELLED
        self._disarm(job)
        log_with_context(logger, logging.INFO, "Scheduled notification cancelled", extra={"job_id": job_id})
        return True

    def get(self, job_id: str) -> JobSnapshot:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.snapshot()

    def list_active(self) -> tuple[JobSnapshot, ...]:
        """Return snapshots of every registered job ordered by next firing."""
        with self._lock:
            snapshots = [job.snapshot() for job in self._jobs.values()]
        return tuple(sorted(snapshots, key=lambda snap: (snap.scheduled_for, snap.job_id)))

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _unique_id(self) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            # Recently issued ids stay reserved after their job is gone
            if candidate not in self._jobs and candidate not in self._recent_ids:
                self._recent_ids.append(candidate)
                return candidate
        msg = "Unable to generate a unique job id"
        raise RuntimeError(msg)

    def _disarm(self, job: _Job) -> None:
        task = job.task
        if task is None or task.done():
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if job.loop is None or current is job.loop:
            _ = task.cancel()
        elif not job.loop.is_closed():
            _ = job.loop.call_soon_threadsafe(task.cancel)

    def _is_registered(self, job: _Job) -> bool:
        return self._jobs.get(job.job_id) is job

    async def _run_job(self, job: _Job) -> None:
        while True:
            delay = (job.scheduled_for - self._clock()).total_seconds()
            await self._sleep(max(delay, 0.0))

            with self._lock:
                if not self._is_registered(job):
                    return
                job.state = JobState.FIRED
            fire_at = job.scheduled_for

            firing = asyncio.ensure_future(self._fire(job))
            self._inflight.add(firing)
            firing.add_done_callback(self._inflight.discard)
            # Cancelling the trigger must not abort a dispatch already under way
            await asyncio.shield(firing)

            with self._lock:
                if not self._is_registered(job):
                    return
                if job.rule.frequency is Frequency.ONCE:
                    del self._jobs[job.job_id]
                    log_with_context(
                        logger,
                        logging.DEBUG,
                        "One-shot job completed and removed",
                        extra={"job_id": job.job_id},
                    )
                    return
                job.scheduled_for = next_occurrence(job.rule, max(self._clock(), fire_at), inclusive=False)
                job.state = JobState.ARMED

            log_with_context(
                logger,
                logging.INFO,
                "Daily job re-armed",
                extra={"job_id": job.job_id, "scheduled_for": job.scheduled_for.isoformat()},
            )

    async def _fire(self, job: _Job) -> None:
        token = set_correlation_id(job.job_id)
        try:
            log_with_context(
                logger,
                logging.INFO,
                "Firing scheduled notification",
                extra={"job_id": job.job_id, "title": job.notification.title},
            )
            error: str | None = None
            try:
                result = await job.dispatcher.dispatch(job.notification, job.options)
            except Exception as exc:
                error = sanitize_exception(exc)
                log_with_context(
                    logger,
                    logging.ERROR,
                    "Scheduled notification failed",
                    extra={"job_id": job.job_id, "error_message": error},
                )
            else:
                log_with_context(
                    logger,
                    logging.INFO,
                    "Scheduled notification sent",
                    extra={"job_id": job.job_id, "provider": result.used_provider},
                )
            with self._lock:
                job.run_count += 1
                job.last_run_at = self._clock()
                job.last_error = error
        finally:
            reset_correlation_id(token)
