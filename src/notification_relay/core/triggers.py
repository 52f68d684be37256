"""Time-of-day trigger rules for scheduled notifications.

A ``ScheduleSpec`` is parsed once into a ``TriggerRule``; the rule then
answers "when is the next firing at or after this instant" in its own zone.
Local times that fall into a DST gap are normalised forward through UTC,
so 02:30 on a spring-forward day fires at 03:30 local time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Final
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from notification_relay.core.exceptions import ScheduleFormatError
from notification_relay.types import Frequency, ScheduleSpec

__all__ = ["TIME_PATTERN", "TriggerRule", "next_occurrence", "parse_schedule"]

TIME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(slots=True, frozen=True)
class TriggerRule:
    """Validated schedule: a local wall-clock time, a zone and a frequency."""

    hour: int
    minute: int
    timezone: str
    zone: ZoneInfo
    frequency: Frequency

    @property
    def time(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def parse_schedule(spec: ScheduleSpec) -> TriggerRule:
    """Validate a schedule and resolve its timezone.

    Raises:
        ScheduleFormatError: If the time is not ``HH:MM`` (24-hour, two digits
            each), the timezone is unknown, or the frequency is unsupported

    Examples:
        >>> parse_schedule(ScheduleSpec(time="09:30", timezone="Europe/Paris")).time
        '09:30'
    """
    match = TIME_PATTERN.match(spec.time or "")
    if match is None:
        msg = f"Invalid time format {spec.time!r}. Use HH:MM (24-hour) format"
        raise ScheduleFormatError(msg)

    timezone_name = spec.timezone
    if not timezone_name:
        msg = "Invalid timezone: an IANA timezone name is required"
        raise ScheduleFormatError(msg)
    try:
        zone = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        msg = f"Invalid timezone: {timezone_name!r}"
        raise ScheduleFormatError(msg) from exc

    try:
        frequency = Frequency(spec.frequency)
    except ValueError as exc:
        msg = f"Frequency must be one of {', '.join(repr(f.value) for f in Frequency)}, got {spec.frequency!r}"
        raise ScheduleFormatError(msg) from exc

    return TriggerRule(
        hour=int(match.group(1)),
        minute=int(match.group(2)),
        timezone=timezone_name,
        zone=zone,
        frequency=frequency,
    )


def _local_candidate(rule: TriggerRule, day: date) -> datetime:
    naive = datetime.combine(day, time(rule.hour, rule.minute))
    # Round-trip through UTC so nonexistent wall times land on a real instant
    return naive.replace(tzinfo=rule.zone).astimezone(UTC).astimezone(rule.zone)


def next_occurrence(rule: TriggerRule, now: datetime, *, inclusive: bool = True) -> datetime:
    """Return the next firing instant for ``rule`` relative to ``now``.

    Args:
        rule: Parsed trigger rule
        now: Timezone-aware reference instant
        inclusive: Whether a firing exactly at ``now`` counts

    Returns:
        Timezone-aware datetime in the rule's zone

    Raises:
        ValueError: If ``now`` is naive
    """
    if now.tzinfo is None or now.utcoffset() is None:
        msg = "next_occurrence requires a timezone-aware datetime"
        raise ValueError(msg)

    local_now = now.astimezone(rule.zone)
    # Same-zone comparisons ignore fold, so compare instants in UTC
    reference = now.astimezone(UTC)
    for offset in range(3):
        candidate = _local_candidate(rule, local_now.date() + timedelta(days=offset))
        instant = candidate.astimezone(UTC)
        if instant > reference or (inclusive and instant == reference):
            return candidate

    # Unreachable: two consecutive local days always contain the wall time
    msg = f"No occurrence of {rule.time} found after {now.isoformat()}"
    raise RuntimeError(msg)
