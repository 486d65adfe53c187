"""
Reports, health & status endpoints.

Both reports go through `timeclock.services.reports.build_report`; the
authorities variant only narrows the input to kiosk punches and resolves the
period (month or year) in local time.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import (check_date_range, client_ip,
                                   get_current_active_user, get_db,
                                   require_admin, require_reviewer)
from timeclock.core.config import settings
from timeclock.models.correction import PunchReview
from timeclock.models.employee import Employee, Punch
from timeclock.models.user import User
from timeclock.schemas.attendance import (HealthResponse, IntervalRead,
                                          StatusResponse,
                                          TimezoneDebugResponse)
from timeclock.schemas.report import (AttendanceReportResponse,
                                      AuthoritiesReportResponse, DayReportRead,
                                      EmployeeReportRead)
from timeclock.services.clock import (TIMEZONE_NAME, format_datetime_es,
                                      format_hhmm, local_range_bounds,
                                      to_local_date_key, utcnow,
                                      verify_timezone_support)
from timeclock.services.events import PunchSource
from timeclock.services.reports import (AttendanceReport, build_report,
                                        resolve_period)
from timeclock.services.status import DutyState
from timeclock.services.store import (add_audit, current_status,
                                      get_attendance_settings, load_events,
                                      load_names)

router = APIRouter(tags=["reports"])
logger = logging.getLogger(__name__)


def _employee_sections(report: AttendanceReport) -> list[EmployeeReportRead]:
    return [
        EmployeeReportRead(
            employee_id=emp.employee_id,
            last_name=emp.last_name,
            first_name=emp.first_name,
            total_minutes=emp.total_minutes,
            total_display=format_hhmm(emp.total_minutes),
            days=[
                DayReportRead(
                    date=day.date,
                    first_in=day.first_in,
                    last_out=day.last_out,
                    total_minutes=day.total_minutes,
                    total_display=format_hhmm(day.total_minutes),
                    break_taken=day.break_taken,
                    signed=day.signed,
                    corrected=day.corrected,
                    incidents=list(day.incidents),
                    intervals=[IntervalRead.from_interval(i) for i in day.intervals],
                )
                for day in emp.days
            ],
        )
        for emp in report.employees
    ]


def _period_or_422(scope: str, year: int, **kwargs) -> tuple[date, date]:
    try:
        return resolve_period(scope, year, **kwargs)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


async def _build(
    db: AsyncSession,
    first: date,
    last: date,
    *,
    employee_id: int | None,
    source: str | None,
    with_corrections: bool,
) -> AttendanceReport:
    check_date_range(first, last)
    start, end = local_range_bounds(first, last)
    events = await load_events(
        db,
        employee_id=employee_id,
        start=start,
        end=end,
        source=source,
        with_corrections=with_corrections,
    )
    att = await get_attendance_settings(db)
    names = await load_names(db, {e.employee_id for e in events})
    return build_report(events, names, no_break_threshold_minutes=att.no_break_threshold_minutes)


# ── Reports ─────────────────────────────────────────────────────────
@router.get("/reports/attendance", response_model=AttendanceReportResponse)
async def attendance_report(
    request: Request,
    date_from: date | None = None,
    date_to: date | None = None,
    year: int | None = None,
    week: int | None = None,
    employee_id: int | None = None,
    source: PunchSource | None = None,
    apply_corrections: bool = True,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_reviewer),
) -> AttendanceReportResponse:
    """Per-employee, per-local-day totals with incidents.

    The period is either ``date_from``..``date_to`` or the ISO ``week`` of ``year``.
    """
    if week is not None:
        if year is None:
            raise HTTPException(status_code=422, detail="year is required with week")
        date_from, date_to = _period_or_422("week", year, week=week)
    elif date_from is None or date_to is None:
        raise HTTPException(status_code=422, detail="Give date_from and date_to, or year and week")

    report = await _build(
        db,
        date_from,
        date_to,
        employee_id=employee_id,
        source=source.value if source else None,
        with_corrections=apply_corrections,
    )
    add_audit(
        db, "export", actor_type="user", actor_id=user.id,
        target_type="report", target_id="attendance",
        details={"from": date_from.isoformat(), "to": date_to.isoformat(), "employee_id": employee_id},
        ip_address=client_ip(request),
    )
    await db.commit()
    return AttendanceReportResponse(
        date_from=date_from.isoformat(),
        date_to=date_to.isoformat(),
        generated_at=utcnow(),
        timezone=TIMEZONE_NAME,
        source=source.value if source else None,
        total_minutes=report.total_minutes,
        monotonic=report.monotonic,
        dataset_hash=report.dataset_hash(),
        employees=_employee_sections(report),
    )


@router.get("/reports/authorities", response_model=AuthoritiesReportResponse)
async def authorities_report(
    request: Request,
    year: int,
    scope: Literal["week", "month", "year"] = "month",
    month: int | None = None,
    week: int | None = None,
    employee_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_reviewer),
) -> AuthoritiesReportResponse:
    """Labour-inspection register: kiosk punches, corrections applied and flagged."""
    first, last = _period_or_422(scope, year, month=month, week=week)

    report = await _build(
        db,
        first,
        last,
        employee_id=employee_id,
        source=PunchSource.KIOSK.value,
        with_corrections=True,
    )
    add_audit(
        db, "export", actor_type="user", actor_id=user.id,
        target_type="report", target_id="authorities",
        details={"scope": scope, "year": year, "month": month, "week": week, "employee_id": employee_id},
        ip_address=client_ip(request),
    )
    await db.commit()
    logger.info(
        "Authorities report %s %s/%s: %d employees, hash %s",
        scope, year, week if scope == "week" else (month or "-"), len(report.employees), report.dataset_hash()[:12],
    )
    return AuthoritiesReportResponse(
        scope=scope,
        year=year,
        month=month if scope == "month" else None,
        week=week if scope == "week" else None,
        date_from=first.isoformat(),
        date_to=last.isoformat(),
        generated_at=utcnow(),
        timezone=TIMEZONE_NAME,
        source=PunchSource.KIOSK.value,
        total_minutes=report.total_minutes,
        monotonic=report.monotonic,
        dataset_hash=report.dataset_hash(),
        employees=_employee_sections(report),
    )


# ── Health / Status ─────────────────────────────────────────────────
@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check: DB and Redis connectivity."""
    result = HealthResponse(db=False, redis=False)

    try:
        await db.execute(select(1))
        result.db = True
    except Exception as e:
        logger.error("Health check DB failure: %s", e)

    try:
        import redis.asyncio as aioredis

        r = aioredis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        await r.ping()
        await r.aclose()
        result.redis = True
    except Exception as e:
        logger.error("Health check Redis failure: %s", e)

    return result


@router.get("/status", response_model=StatusResponse)
async def system_status(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> StatusResponse:
    """Who is in today: active staff, punches today, currently clocked in."""
    today = to_local_date_key(utcnow())

    active_result = await db.execute(select(Employee.id).where(Employee.is_active.is_(True)))
    active_ids = [row[0] for row in active_result.all()]

    punched = await db.execute(
        select(func.count(func.distinct(Punch.employee_id))).where(Punch.local_date == today)
    )
    review = await db.execute(
        select(func.count(Punch.id)).where(
            Punch.needs_review.is_(True),
            Punch.id.not_in(select(PunchReview.punch_id)),
        )
    )

    clocked_in = on_break = 0
    for emp_id in active_ids:
        state = (await current_status(db, emp_id)).state
        if state is DutyState.ON:
            clocked_in += 1
        elif state is DutyState.BREAK:
            on_break += 1

    return StatusResponse(
        date=today,
        active_employees=len(active_ids),
        punched_today=punched.scalar() or 0,
        clocked_in=clocked_in,
        on_break=on_break,
        needs_review=review.scalar() or 0,
        status="operational",
    )


@router.get("/debug/timezone", response_model=TimezoneDebugResponse)
async def debug_timezone(
    _admin: User = Depends(require_admin),
) -> TimezoneDebugResponse:
    now = utcnow()
    ok, details = verify_timezone_support()
    if not ok:
        logger.warning("Timezone self-check failed: %s", details)
    return TimezoneDebugResponse(
        timezone=TIMEZONE_NAME,
        server_utc=now.isoformat(),
        local_display=format_datetime_es(now, with_seconds=True),
        local_date=to_local_date_key(now),
        dst_check_ok=ok,
        dst_check_details=details,
    )
