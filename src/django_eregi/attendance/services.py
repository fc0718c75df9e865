"""On-site check-in, gate scans, and stay-time calculation."""

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from django_eregi.attendance.models import AccessLog, AttendanceZone
from django_eregi.conference.models import Conference
from django_eregi.registration.models import Registration, RegistrationLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BreakTime:
    """A daily break, as wall-clock ``HH:MM`` times."""

    start: time
    end: time

    @classmethod
    def parse(cls, data: dict[str, str]) -> "BreakTime":
        """Build a break from ``{"start": "HH:MM", "end": "HH:MM"}``.

        Raises:
            ValueError: If either time is not ``HH:MM``.
        """
        return cls(start=_parse_hhmm(data["start"]), end=_parse_hhmm(data["end"]))


def _parse_hhmm(value: str) -> time:
    hours, _, minutes = str(value).partition(":")
    return time(int(hours), int(minutes or 0))


def _overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> timedelta:
    start = max(start_a, start_b)
    end = min(end_a, end_b)
    if start >= end:
        return timedelta(0)
    return end - start


def _segment(
    entry: datetime,
    exit_: datetime,
    breaks: Sequence[BreakTime],
    session_start: datetime | None,
    session_end: datetime | None,
) -> timedelta:
    start = max(entry, session_start) if session_start else entry
    end = min(exit_, session_end) if session_end else exit_
    if start >= end:
        return timedelta(0)

    duration = end - start
    for brk in breaks:
        break_start = entry.replace(hour=brk.start.hour, minute=brk.start.minute, second=0, microsecond=0)
        break_end = entry.replace(hour=brk.end.hour, minute=brk.end.minute, second=0, microsecond=0)
        if break_end < break_start:
            break_end += timedelta(days=1)
        duration -= _overlap(start, end, break_start, break_end)
    return max(duration, timedelta(0))


def calculate_stay_time(
    logs: Iterable[Any],
    breaks: Iterable[BreakTime | dict[str, str]] = (),
    session_start: datetime | None = None,
    session_end: datetime | None = None,
) -> int:
    """Return the whole minutes spent inside, net of breaks.

    Args:
        logs: Objects with ``action`` (``"ENTRY"``/``"EXIT"``) and
            ``timestamp`` attributes, in any order.
        breaks: Daily breaks. Break times are taken on the day of each
            entry, in the entry's timezone.
        session_start: Time before this is not counted.
        session_end: Time after this is not counted; an entry with no exit is
            closed here.

    Returns:
        Minutes inside, floored.  ENTRY scans repeated before an EXIT and
        EXIT scans without a prior ENTRY are ignored.
    """
    parsed = [brk if isinstance(brk, BreakTime) else BreakTime.parse(brk) for brk in breaks]
    total = timedelta(0)
    entry: datetime | None = None

    for log in sorted(logs, key=lambda item: item.timestamp):
        if log.action == AccessLog.Action.ENTRY:
            if entry is None:
                entry = log.timestamp
        elif log.action == AccessLog.Action.EXIT and entry is not None:
            total += _segment(entry, log.timestamp, parsed, session_start, session_end)
            entry = None

    if entry is not None and session_end is not None and session_end > entry:
        total += _segment(entry, session_end, parsed, session_start, session_end)

    return int(total.total_seconds() // 60)


@dataclass(frozen=True, slots=True)
class _LocalLog:
    action: str
    timestamp: datetime


def zone_stay_minutes(registration: Registration, zone: AttendanceZone) -> int:
    """Minutes *registration* spent in *zone*, within its session and net of its breaks."""
    tz = ZoneInfo(zone.conference.timezone)
    logs = [
        _LocalLog(action=log.action, timestamp=timezone.localtime(log.timestamp, tz))
        for log in registration.access_logs.filter(zone=zone.code)
    ]
    return calculate_stay_time(
        logs,
        zone.breaks or (),
        session_start=timezone.localtime(zone.start_at, tz) if zone.start_at else None,
        session_end=timezone.localtime(zone.end_at, tz) if zone.end_at else None,
    )


@transaction.atomic
def check_in(conference: Conference, confirmation_qr: str, *, staff: Any = None) -> Registration:
    """Check a registrant in by the QR on their confirmation.

    Issues the badge QR on first check-in.  Checking in again returns the
    registration unchanged.

    Raises:
        ValidationError: ``not_found`` for an unknown QR, ``not_paid`` for a
            registration that is not PAID.
    """
    registration = (
        Registration.objects.select_for_update()
        .filter(conference=conference, confirmation_qr=(confirmation_qr or "").strip())
        .exclude(confirmation_qr="")
        .first()
    )
    if registration is None:
        raise ValidationError("No registration matches this QR code.", code="not_found")
    if registration.status != Registration.Status.PAID:
        raise ValidationError("This registration has not been paid.", code="not_paid")
    if registration.is_checked_in:
        return registration

    registration.is_checked_in = True
    registration.check_in_time = timezone.now()
    if not registration.badge_qr:
        registration.badge_qr = f"BADGE-{uuid.uuid4().hex}"
    registration.save(update_fields=["is_checked_in", "check_in_time", "badge_qr", "updated_at"])
    RegistrationLog.objects.create(
        registration=registration,
        action=RegistrationLog.Action.CHECKED_IN,
        actor=staff if getattr(staff, "pk", None) else None,
        details={"badge_qr": registration.badge_qr},
    )
    logger.info("Checked in registration %s", registration.pk)
    return registration


def record_access(
    conference: Conference,
    badge_qr: str,
    action: str,
    *,
    zone: str = "",
    staff: Any = None,
    at: datetime | None = None,
) -> AccessLog:
    """Record a gate scan for a checked-in registrant.

    Raises:
        ValidationError: ``invalid_action``, ``not_found`` or
            ``not_checked_in``.
    """
    if action not in AccessLog.Action.values:
        raise ValidationError("Action must be ENTRY or EXIT.", code="invalid_action")
    badge_qr = (badge_qr or "").strip()
    registration = Registration.objects.filter(conference=conference, badge_qr=badge_qr).exclude(badge_qr="").first()
    if registration is None:
        raise ValidationError("No badge matches this QR code.", code="not_found")
    if not registration.is_checked_in:
        raise ValidationError("This registrant has not checked in.", code="not_checked_in")

    log = AccessLog.objects.create(
        registration=registration,
        action=action,
        zone=zone,
        timestamp=at or timezone.now(),
        scanned_by=staff if getattr(staff, "pk", None) else None,
    )
    logger.info("%s for registration %s at zone %r", action, registration.pk, zone)
    return log
