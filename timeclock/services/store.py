"""
Read side of the punch store plus the small shared write helpers.

Everything here turns ORM rows into the immutable values consumed by the
engine modules (`events`, `pairing`, `status`, `overtime`, `reports`).
Stored datetimes are always UTC; SQLite hands them back naive, so every
read goes through `ensure_utc`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.core.config import settings
from timeclock.models.attendance_settings import AttendanceSettings
from timeclock.models.audit_log import AuditLog
from timeclock.models.correction import PunchCorrection, PunchReview
from timeclock.models.employee import Employee, Punch
from timeclock.models.overtime import OvertimeRequest
from timeclock.services.clock import ensure_utc
from timeclock.services.events import (PunchEvent, PunchType, apply_corrections,
                                       to_correction, to_punch_events)
from timeclock.services.reports import EmployeeName
from timeclock.services.status import EmployeeStatus, derive_status

logger = logging.getLogger(__name__)

_WORK_TYPES = (PunchType.IN.value, PunchType.OUT.value)


# ── Settings singleton ──────────────────────────────────────────────
async def get_attendance_settings(db: AsyncSession) -> AttendanceSettings:
    """Return the settings row, staging it from the env defaults on first use.

    A newly created row is only flushed; it persists with the caller's commit.
    """
    result = await db.execute(select(AttendanceSettings).limit(1))
    row = result.scalar_one_or_none()
    if row is None:
        row = AttendanceSettings(
            id=1,
            expected_daily_minutes=settings.EXPECTED_DAILY_MINUTES,
            overtime_threshold_minutes=settings.OVERTIME_MIN_THRESHOLD,
            no_break_threshold_minutes=settings.NO_BREAK_THRESHOLD_MINUTES,
            break_countdown_minutes=settings.BREAK_COUNTDOWN_MINUTES,
        )
        db.add(row)
        await db.flush()
        logger.info("Created default attendance settings")
    return row


# ── Audit ───────────────────────────────────────────────────────────
def add_audit(
    db: AsyncSession,
    action: str,
    *,
    actor_type: str,
    actor_id: int,
    target_type: str,
    target_id: Any,
    details: dict | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    """Stage an audit row; it is committed together with the audited change."""
    entry = AuditLog(
        action=action,
        actor_type=actor_type,
        actor_id=actor_id,
        target_type=target_type,
        target_id=str(target_id),
        details=json.dumps(details, default=str, sort_keys=True) if details else None,
        ip_address=ip_address,
    )
    db.add(entry)
    return entry


# ── Employees ───────────────────────────────────────────────────────
async def get_employee(db: AsyncSession, employee_id: int, *, for_update: bool = False) -> Employee | None:
    query = select(Employee).where(Employee.id == employee_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def load_names(db: AsyncSession, employee_ids: Iterable[int] | None = None) -> dict[int, EmployeeName]:
    query = select(Employee.id, Employee.first_name, Employee.last_name)
    if employee_ids is not None:
        ids = list(employee_ids)
        if not ids:
            return {}
        query = query.where(Employee.id.in_(ids))
    result = await db.execute(query)
    return {row.id: EmployeeName(row.id, row.first_name, row.last_name) for row in result.all()}


# ── Punches ─────────────────────────────────────────────────────────
async def last_punch(db: AsyncSession, employee_id: int) -> Punch | None:
    result = await db.execute(
        select(Punch)
        .where(Punch.employee_id == employee_id)
        .order_by(Punch.timestamp.desc(), Punch.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def load_punch_rows(
    db: AsyncSession,
    *,
    employee_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    source: str | None = None,
    extra_ids: Sequence[int] = (),
) -> list[Punch]:
    """Punches in ``[start, end)`` in (timestamp, id) order.

    *extra_ids* are included even when outside the window (punches whose
    corrections move them into it).
    """
    window = []
    if start is not None:
        window.append(Punch.timestamp >= start)
    if end is not None:
        window.append(Punch.timestamp < end)

    query = select(Punch)
    if employee_id is not None:
        query = query.where(Punch.employee_id == employee_id)
    if source is not None:
        query = query.where(Punch.source == source)
    if extra_ids and window:
        query = query.where(or_(and_(*window), Punch.id.in_(list(extra_ids))))
    elif window:
        query = query.where(*window)
    result = await db.execute(query.order_by(Punch.timestamp, Punch.id))
    return list(result.scalars().all())


async def load_corrections(db: AsyncSession, punch_ids: Iterable[int]) -> list[PunchCorrection]:
    ids = list(punch_ids)
    if not ids:
        return []
    result = await db.execute(
        select(PunchCorrection)
        .where(PunchCorrection.original_punch_id.in_(ids))
        .order_by(PunchCorrection.created_at, PunchCorrection.id)
    )
    return list(result.scalars().all())


async def _corrected_into_window(
    db: AsyncSession,
    start: datetime,
    end: datetime,
    employee_id: int | None,
) -> list[int]:
    query = (
        select(PunchCorrection.original_punch_id)
        .where(PunchCorrection.new_timestamp >= start, PunchCorrection.new_timestamp < end)
    )
    if employee_id is not None:
        query = query.join(Punch, Punch.id == PunchCorrection.original_punch_id).where(
            Punch.employee_id == employee_id
        )
    result = await db.execute(query)
    return sorted({row[0] for row in result.all()})


async def load_events(
    db: AsyncSession,
    *,
    employee_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    source: str | None = None,
    with_corrections: bool = False,
) -> list[PunchEvent]:
    """Punch events in the half-open window ``[start, end)``, optionally with the
    correction overlay.

    With corrections, the overlay is applied first and the window filter
    afterwards, so punches corrected into or out of the window land on the
    right side of it.
    """
    extra: list[int] = []
    if with_corrections and start is not None and end is not None:
        extra = await _corrected_into_window(db, start, end, employee_id)

    rows = await load_punch_rows(
        db, employee_id=employee_id, start=start, end=end, source=source, extra_ids=extra
    )
    events = to_punch_events(rows)
    if not with_corrections:
        return events

    corrections = [to_correction(c) for c in await load_corrections(db, [e.id for e in events])]
    overlaid = apply_corrections(events, corrections)
    return [
        e for e in overlaid
        if (start is None or e.timestamp >= start) and (end is None or e.timestamp < end)
    ]


# ── Export lookups ──────────────────────────────────────────────────
async def reviewed_punch_ids(db: AsyncSession, punch_ids: Iterable[int]) -> set[int]:
    ids = list(punch_ids)
    if not ids:
        return set()
    result = await db.execute(select(PunchReview.punch_id).where(PunchReview.punch_id.in_(ids)))
    return {row[0] for row in result.all()}


async def overtime_by_day(
    db: AsyncSession,
    first_key: str,
    last_key: str,
    employee_id: int | None = None,
) -> dict[tuple[int, str], OvertimeRequest]:
    """Overtime requests keyed by (employee, local date) for an inclusive date-key range."""
    query = select(OvertimeRequest).where(
        OvertimeRequest.date >= first_key, OvertimeRequest.date <= last_key
    )
    if employee_id is not None:
        query = query.where(OvertimeRequest.employee_id == employee_id)
    result = await db.execute(query)
    return {(r.employee_id, r.date): r for r in result.scalars().all()}


# ── Status ──────────────────────────────────────────────────────────
async def current_status(db: AsyncSession, employee_id: int) -> EmployeeStatus:
    """Derive the live duty state from the persisted punches.

    Only the tail starting at the last IN/OUT matters, so older history is not
    loaded.
    """
    result = await db.execute(
        select(Punch)
        .where(Punch.employee_id == employee_id, Punch.type.in_(_WORK_TYPES))
        .order_by(Punch.timestamp.desc(), Punch.id.desc())
        .limit(1)
    )
    last_work = result.scalar_one_or_none()
    if last_work is None:
        return derive_status(to_punch_events(await load_punch_rows(db, employee_id=employee_id)))

    since = ensure_utc(last_work.timestamp)
    rows = await load_punch_rows(db, employee_id=employee_id, start=since)
    return derive_status(to_punch_events(rows))
