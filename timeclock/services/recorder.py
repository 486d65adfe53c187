"""
Punch recording: the only write path for punches.

`record_punch` runs the whole ingestion pipeline for one employee while
holding that employee's lock (in-process `KeyedLocks`, plus a row lock on the
employee where the database supports it):

1. replay check on ``client_request_id``
2. timestamp decoding and ordering against the last persisted punch
3. state-machine check of the requested action
4. signature / geolocation rules for IN and OUT
5. insert + audit, and on OUT the overtime create-or-update for that local day
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.core.config import settings
from timeclock.core.errors import (NotFoundError, PunchValidationError,
                                   StateConflictError)
from timeclock.core.security import signature_digest
from timeclock.models.attendance_settings import AttendanceSettings
from timeclock.models.employee import Punch
from timeclock.models.overtime import OvertimeRequest
from timeclock.services.clock import (day_start, ensure_utc, local_range_bounds,
                                      parse_date_key, parse_instant,
                                      to_local_date_key, utcnow)
from timeclock.services.events import PunchSource, PunchType
from timeclock.services.locks import employee_locks, overtime_locks
from timeclock.services.overtime import OvertimeEvaluation, evaluate_overtime
from timeclock.services.status import EmployeeStatus, ensure_action_allowed
from timeclock.services.store import (add_audit, current_status, get_employee,
                                      get_attendance_settings, last_punch,
                                      load_events)

logger = logging.getLogger(__name__)


@dataclass
class OvertimeUpsert:
    date: str
    evaluation: OvertimeEvaluation
    request: OvertimeRequest | None = None
    created: bool = False
    updated: bool = False


@dataclass
class PunchOutcome:
    punch: Punch
    status: EmployeeStatus
    replayed: bool = False
    overtime: OvertimeUpsert | None = None


# ── Overtime ────────────────────────────────────────────────────────
async def upsert_overtime(
    db: AsyncSession,
    employee_id: int,
    date_key: str,
    att_settings: AttendanceSettings,
    *,
    ip_address: str | None = None,
) -> OvertimeUpsert:
    """Re-evaluate one local day and create or refresh its overtime request.

    Only a ``pending`` request is ever updated; approved or rejected ones are
    left exactly as the reviewer saved them. Changes are staged on *db* and
    committed by the caller.
    """
    day = parse_date_key(date_key)
    start, end = local_range_bounds(day, day)
    events = await load_events(db, employee_id=employee_id, start=start, end=end)
    evaluation = evaluate_overtime(
        events,
        att_settings.expected_daily_minutes,
        att_settings.overtime_threshold_minutes,
    )
    outcome = OvertimeUpsert(date=date_key, evaluation=evaluation)
    if not evaluation.should_create_request:
        logger.debug(
            "No overtime for employee %d on %s (%d min worked)",
            employee_id, date_key, evaluation.daily_minutes,
        )
        return outcome

    async with overtime_locks.hold((employee_id, date_key)):
        result = await db.execute(
            select(OvertimeRequest).where(
                OvertimeRequest.employee_id == employee_id,
                OvertimeRequest.date == date_key,
            )
        )
        existing = result.scalar_one_or_none()

        if existing is not None:
            outcome.request = existing
            if existing.status != "pending":
                logger.info(
                    "Overtime request %d for employee %d on %s already %s; not updated",
                    existing.id, employee_id, date_key, existing.status,
                )
                return outcome
            if existing.minutes != evaluation.overtime_minutes:
                existing.minutes = evaluation.overtime_minutes
                existing.reason = "AUTO"
                outcome.updated = True
        else:
            existing = OvertimeRequest(
                employee_id=employee_id,
                date=date_key,
                day_start=day_start(day),
                minutes=evaluation.overtime_minutes,
                reason="AUTO",
                status="pending",
            )
            db.add(existing)
            await db.flush()
            outcome.request = existing
            outcome.created = True

        if outcome.created or outcome.updated:
            add_audit(
                db,
                "overtime_create",
                actor_type="employee",
                actor_id=employee_id,
                target_type="overtime_request",
                target_id=existing.id,
                details={
                    "daily_minutes": evaluation.daily_minutes,
                    "expected_daily_minutes": att_settings.expected_daily_minutes,
                    "overtime_minutes": evaluation.overtime_minutes,
                    "updated": outcome.updated,
                },
                ip_address=ip_address,
            )
            logger.info(
                "Overtime request %d %s for employee %d on %s: %d min",
                existing.id,
                "created" if outcome.created else "updated",
                employee_id,
                date_key,
                evaluation.overtime_minutes,
            )
    return outcome


# ── Punch pipeline ──────────────────────────────────────────────────
def _resolve_timestamp(raw: object, now: datetime) -> datetime:
    if raw is None:
        return now
    instant = parse_instant(raw)  # type: ignore[arg-type]
    if instant - now > timedelta(seconds=settings.MAX_CLOCK_SKEW_SECONDS):
        raise PunchValidationError("Punch timestamp is in the future")
    return instant


def _check_signature(punch_type: PunchType, signature_data: str | None) -> str | None:
    if not punch_type.is_work:
        return None
    if not signature_data or len(signature_data) < settings.MIN_SIGNATURE_LENGTH:
        raise PunchValidationError("A signature is required to clock in or out")
    return signature_digest(signature_data)


async def record_punch(
    db: AsyncSession,
    employee_id: int,
    punch_type: PunchType,
    *,
    timestamp: object = None,
    latitude: float | None = None,
    longitude: float | None = None,
    accuracy: float | None = None,
    signature_data: str | None = None,
    source: PunchSource = PunchSource.MOBILE,
    client_request_id: str | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> PunchOutcome:
    async with employee_locks.hold(employee_id):
        employee = await get_employee(db, employee_id, for_update=True)
        if employee is None or not employee.is_active:
            raise NotFoundError(f"Employee {employee_id} not found or inactive")

        if client_request_id:
            result = await db.execute(
                select(Punch).where(
                    Punch.employee_id == employee_id,
                    Punch.client_request_id == client_request_id,
                )
            )
            stored = result.scalar_one_or_none()
            if stored is not None:
                if stored.type != punch_type.value:
                    logger.warning(
                        "Replay %s for employee %d asked for %s but stored punch %d is %s",
                        client_request_id, employee_id, punch_type.value, stored.id, stored.type,
                    )
                logger.info("Replayed punch %d for employee %d", stored.id, employee_id)
                return PunchOutcome(
                    punch=stored,
                    status=await current_status(db, employee_id),
                    replayed=True,
                )

        instant = _resolve_timestamp(timestamp, now or utcnow())

        previous = await last_punch(db, employee_id)
        status = await current_status(db, employee_id)
        if previous is not None:
            previous_at = ensure_utc(previous.timestamp)
            if previous_at is not None and instant < previous_at:
                raise StateConflictError(
                    "OUT_OF_ORDER",
                    "Punch is older than the last recorded punch",
                    state=status.state.value,
                )

        ensure_action_allowed(status, punch_type)
        digest = _check_signature(punch_type, signature_data)
        needs_review = punch_type.is_work and (latitude is None or longitude is None)

        punch = Punch(
            employee_id=employee_id,
            type=punch_type.value,
            timestamp=instant,
            local_date=to_local_date_key(instant),
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            needs_review=needs_review,
            source=source.value,
            signature_sha256=digest,
            signature_signed_at=utcnow() if digest else None,
            client_request_id=client_request_id,
        )
        db.add(punch)
        await db.flush()
        add_audit(
            db,
            "create",
            actor_type="employee",
            actor_id=employee_id,
            target_type="punch",
            target_id=punch.id,
            details={"type": punch_type.value, "needs_review": needs_review, "source": source.value},
            ip_address=ip_address,
        )

        overtime = None
        if punch_type is PunchType.OUT:
            att_settings = await get_attendance_settings(db)
            overtime = await upsert_overtime(
                db, employee_id, punch.local_date, att_settings, ip_address=ip_address
            )

        await db.commit()
        await db.refresh(punch)
        logger.info(
            "Punch %d: employee=%d type=%s source=%s needs_review=%s",
            punch.id, employee_id, punch.type, punch.source, needs_review,
        )
        return PunchOutcome(
            punch=punch,
            status=await current_status(db, employee_id),
            overtime=overtime,
        )
