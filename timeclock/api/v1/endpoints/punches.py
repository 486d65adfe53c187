"""
Punch endpoints: ingestion (mobile, kiosk, pauses), listings, the employee
shift view / CSV export and the admin correction and review workflows.

Employee-facing routes authenticate with the employee token from the PIN
login; everything else requires a staff user.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import StreamingResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import (check_date_range, client_ip,
                                   get_current_active_user,
                                   get_current_employee, get_db,
                                   require_kiosk, require_reviewer)
from timeclock.core.config import settings
from timeclock.core.security import pin_lookup_key, verify_password
from timeclock.models.correction import PunchCorrection, PunchReview
from timeclock.models.employee import Employee, Punch
from timeclock.models.user import User
from timeclock.schemas.attendance import (CorrectionCreate, CorrectionRead,
                                          KioskPunchCreate, OvertimeOutcome,
                                          PauseRequest, PunchCreate,
                                          PunchListItem, PunchRead,
                                          PunchResult, ReviewCreate,
                                          ReviewRead, ShiftRow,
                                          ShiftsResponse, StatusRead)
from timeclock.services.clock import (format_date_es, format_duration,
                                      format_time_es, local_date,
                                      local_range_bounds, parse_instant,
                                      utcnow)
from timeclock.services.events import PunchSource, PunchType
from timeclock.services.pairing import (PairedInterval, PairingResult,
                                        pair_punches, worked_minutes)
from timeclock.services.recorder import PunchOutcome, record_punch
from timeclock.services.store import (add_audit, current_status,
                                      get_attendance_settings, load_events)

router = APIRouter(tags=["punches"])
logger = logging.getLogger(__name__)

_SHIFT_DAYS_DEFAULT = 30


async def _punch_result(db: AsyncSession, outcome: PunchOutcome, response: Response) -> PunchResult:
    if outcome.replayed:
        response.status_code = 200
    att = await get_attendance_settings(db)
    overtime = None
    if outcome.overtime is not None:
        ev = outcome.overtime.evaluation
        request = outcome.overtime.request
        overtime = OvertimeOutcome(
            date=outcome.overtime.date,
            daily_minutes=ev.daily_minutes,
            overtime_minutes=ev.overtime_minutes,
            should_create_request=ev.should_create_request,
            request_id=request.id if request else None,
            request_status=request.status if request else None,
        )
    return PunchResult(
        punch=PunchRead.model_validate(outcome.punch),
        replayed=outcome.replayed,
        status=StatusRead.build(outcome.punch.employee_id, outcome.status, att.break_countdown_minutes),
        overtime=overtime,
    )


# ── Ingestion ───────────────────────────────────────────────────────
@router.post("/punches", response_model=PunchResult, status_code=201)
async def create_punch(
    body: PunchCreate,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> PunchResult:
    """Clock in / out (or break) from the mobile app."""
    outcome = await record_punch(
        db,
        employee.id,
        body.type,
        timestamp=body.timestamp,
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy,
        signature_data=body.signature_data,
        source=PunchSource.MOBILE,
        client_request_id=body.client_request_id,
        ip_address=client_ip(request),
    )
    return await _punch_result(db, outcome, response)


@router.post("/kiosk/punch", response_model=PunchResult, status_code=201)
async def kiosk_punch(
    body: KioskPunchCreate,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    _kiosk: User = Depends(require_kiosk),
) -> PunchResult:
    """Punch on a shared kiosk; the employee identifies with a PIN."""
    result = await db.execute(select(Employee).where(Employee.pin_lookup == pin_lookup_key(body.pin)))
    employee = result.scalar_one_or_none()
    if employee is None or not employee.pin_hash or not verify_password(body.pin, employee.pin_hash):
        raise HTTPException(status_code=401, detail="Invalid PIN")
    if not employee.is_active:
        raise HTTPException(status_code=403, detail="Employee account is deactivated")

    outcome = await record_punch(
        db,
        employee.id,
        body.type,
        timestamp=body.timestamp,
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy,
        signature_data=body.signature_data,
        source=PunchSource.KIOSK,
        client_request_id=body.client_request_id,
        ip_address=client_ip(request),
    )
    return await _punch_result(db, outcome, response)


async def _pause(
    punch_type: PunchType,
    body: PauseRequest | None,
    request: Request,
    response: Response,
    db: AsyncSession,
    employee: Employee,
) -> PunchResult:
    body = body or PauseRequest()
    outcome = await record_punch(
        db,
        employee.id,
        punch_type,
        timestamp=body.timestamp,
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy,
        source=PunchSource.MOBILE,
        client_request_id=body.client_request_id,
        ip_address=client_ip(request),
    )
    return await _punch_result(db, outcome, response)


@router.post("/pause/start", response_model=PunchResult, status_code=201)
async def pause_start(
    request: Request,
    response: Response,
    body: PauseRequest | None = None,
    db: AsyncSession = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> PunchResult:
    return await _pause(PunchType.BREAK_START, body, request, response, db, employee)


@router.post("/pause/end", response_model=PunchResult, status_code=201)
async def pause_end(
    request: Request,
    response: Response,
    body: PauseRequest | None = None,
    db: AsyncSession = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> PunchResult:
    return await _pause(PunchType.BREAK_END, body, request, response, db, employee)


@router.get("/pause/status", response_model=StatusRead)
async def pause_status(
    db: AsyncSession = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> StatusRead:
    att = await get_attendance_settings(db)
    status = await current_status(db, employee.id)
    return StatusRead.build(employee.id, status, att.break_countdown_minutes)


# ── Listings ────────────────────────────────────────────────────────
@router.get("/punches/my", response_model=list[PunchRead])
async def my_punches(
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> list[Punch]:
    result = await db.execute(
        select(Punch)
        .where(Punch.employee_id == employee.id)
        .order_by(Punch.timestamp.desc(), Punch.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def _list_items(db: AsyncSession, punches: list[Punch]) -> list[PunchListItem]:
    ids = [p.id for p in punches]
    if not ids:
        return []
    names_result = await db.execute(
        select(Employee.id, Employee.first_name, Employee.last_name).where(
            Employee.id.in_({p.employee_id for p in punches})
        )
    )
    names = {row.id: f"{row.first_name} {row.last_name}" for row in names_result.all()}
    reviewed_result = await db.execute(select(PunchReview.punch_id).where(PunchReview.punch_id.in_(ids)))
    reviewed = {row[0] for row in reviewed_result.all()}
    counts_result = await db.execute(
        select(PunchCorrection.original_punch_id, func.count(PunchCorrection.id))
        .where(PunchCorrection.original_punch_id.in_(ids))
        .group_by(PunchCorrection.original_punch_id)
    )
    counts = dict(counts_result.all())

    items = []
    for p in punches:
        item = PunchListItem.model_validate(p)
        item.employee_name = names.get(p.employee_id)
        item.reviewed = p.id in reviewed
        item.correction_count = counts.get(p.id, 0)
        items.append(item)
    return items


@router.get("/punches", response_model=list[PunchListItem])
async def list_punches(
    employee_id: int | None = None,
    needs_review: bool | None = None,
    limit: int = Query(default=50, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[PunchListItem]:
    query = select(Punch)
    if employee_id is not None:
        query = query.where(Punch.employee_id == employee_id)
    if needs_review is not None:
        query = query.where(Punch.needs_review.is_(needs_review))
    result = await db.execute(query.order_by(Punch.timestamp.desc(), Punch.id.desc()).limit(limit))
    return await _list_items(db, list(result.scalars().all()))


@router.get("/punches/needs-review", response_model=list[PunchListItem])
async def punches_needing_review(
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[PunchListItem]:
    """Punches without geolocation that nobody has reviewed yet."""
    reviewed = select(PunchReview.punch_id)
    result = await db.execute(
        select(Punch)
        .where(Punch.needs_review.is_(True), Punch.id.not_in(reviewed))
        .order_by(Punch.timestamp.desc(), Punch.id.desc())
        .limit(limit)
    )
    return await _list_items(db, list(result.scalars().all()))


# ── Corrections / review ────────────────────────────────────────────
async def _punch_or_404(db: AsyncSession, punch_id: int) -> Punch:
    result = await db.execute(select(Punch).where(Punch.id == punch_id))
    punch = result.scalar_one_or_none()
    if punch is None:
        raise HTTPException(status_code=404, detail="Punch not found")
    return punch


@router.post("/punches/{punch_id}/corrections", response_model=CorrectionRead, status_code=201)
async def create_correction(
    punch_id: int,
    body: CorrectionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_reviewer),
) -> PunchCorrection:
    """Record a correction; the original punch is never modified."""
    if len(body.reason) < settings.CORRECTION_REASON_MIN_LENGTH:
        raise HTTPException(
            status_code=422,
            detail=f"Reason must be at least {settings.CORRECTION_REASON_MIN_LENGTH} characters",
        )
    punch = await _punch_or_404(db, punch_id)
    new_timestamp = parse_instant(body.new_timestamp) if body.new_timestamp is not None else None

    correction = PunchCorrection(
        original_punch_id=punch.id,
        corrected_by_id=user.id,
        reason=body.reason,
        new_timestamp=new_timestamp,
        new_type=body.new_type.value if body.new_type else None,
    )
    db.add(correction)
    await db.flush()
    add_audit(
        db,
        "correction",
        actor_type="user",
        actor_id=user.id,
        target_type="punch",
        target_id=punch.id,
        details={
            "correction_id": correction.id,
            "new_timestamp": new_timestamp.isoformat() if new_timestamp else None,
            "new_type": correction.new_type,
        },
        ip_address=client_ip(request),
    )
    await db.commit()
    await db.refresh(correction)
    logger.info("Correction %d recorded for punch %d by user %d", correction.id, punch.id, user.id)
    return correction


@router.get("/punches/{punch_id}/corrections", response_model=list[CorrectionRead])
async def list_corrections(
    punch_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[PunchCorrection]:
    await _punch_or_404(db, punch_id)
    result = await db.execute(
        select(PunchCorrection)
        .where(PunchCorrection.original_punch_id == punch_id)
        .order_by(PunchCorrection.created_at, PunchCorrection.id)
    )
    return list(result.scalars().all())


@router.post("/punches/{punch_id}/review", response_model=ReviewRead, status_code=201)
async def review_punch(
    punch_id: int,
    request: Request,
    body: ReviewCreate | None = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_reviewer),
) -> PunchReview:
    punch = await _punch_or_404(db, punch_id)
    existing = await db.execute(select(PunchReview).where(PunchReview.punch_id == punch.id))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="Punch already reviewed")

    review = PunchReview(punch_id=punch.id, reviewed_by_id=user.id, note=body.note if body else None)
    db.add(review)
    add_audit(
        db, "review", actor_type="user", actor_id=user.id,
        target_type="punch", target_id=punch.id, ip_address=client_ip(request),
    )
    await db.commit()
    await db.refresh(review)
    logger.info("Punch %d reviewed by user %d", punch.id, user.id)
    return review


# ── Employee shifts ─────────────────────────────────────────────────
def _shift_row(interval: PairedInterval) -> ShiftRow:
    if interval.is_in_progress:
        status = "IN_PROGRESS"
    elif interval.is_complete:
        status = "OK"
    else:
        status = "INCOMPLETE"
    return ShiftRow(
        date=interval.local_date,
        date_display=format_date_es(interval.anchor),
        entry_time=format_time_es(interval.entry.timestamp) if interval.entry else "-",
        exit_time=format_time_es(interval.exit.timestamp) if interval.exit else "-",
        duration_minutes=interval.duration_minutes,
        duration_display=format_duration(interval.duration_minutes, interval.is_in_progress),
        status=status,
        anomalies=[a.value for a in interval.anomalies],
    )


async def _employee_shifts(
    db: AsyncSession,
    employee_id: int,
    date_from: date | None,
    date_to: date | None,
) -> tuple[date, date, PairingResult]:
    today = local_date(utcnow())
    last = date_to or today
    first = date_from or (last - timedelta(days=_SHIFT_DAYS_DEFAULT))
    check_date_range(first, last)
    start, end = local_range_bounds(first, last)
    events = await load_events(db, employee_id=employee_id, start=start, end=end, with_corrections=True)
    return first, last, pair_punches(events)


@router.get("/me/shifts", response_model=ShiftsResponse)
async def my_shifts(
    date_from: date | None = Query(default=None, alias="from"),
    date_to: date | None = Query(default=None, alias="to"),
    db: AsyncSession = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> ShiftsResponse:
    first, last, result = await _employee_shifts(db, employee.id, date_from, date_to)
    return ShiftsResponse(
        employee_id=employee.id,
        date_from=first.isoformat(),
        date_to=last.isoformat(),
        shifts=[_shift_row(i) for i in result.intervals],
        total_minutes=result.total_minutes,
        worked_minutes=worked_minutes(result, utcnow()),
    )


@router.get("/me/shifts/export.csv")
async def my_shifts_csv(
    request: Request,
    date_from: date | None = Query(default=None, alias="from"),
    date_to: date | None = Query(default=None, alias="to"),
    db: AsyncSession = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> StreamingResponse:
    """Export the employee's shifts as a CSV file download."""
    first, last, result = await _employee_shifts(db, employee.id, date_from, date_to)
    rows = [_shift_row(i) for i in result.intervals]

    add_audit(
        db, "export", actor_type="employee", actor_id=employee.id,
        target_type="shifts", target_id=employee.id,
        details={"from": first.isoformat(), "to": last.isoformat(), "rows": len(rows)},
        ip_address=client_ip(request),
    )
    await db.commit()

    def iter_csv():
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["fecha", "entrada", "salida", "duracion", "minutos", "estado", "incidencias"])
        for row in rows:
            writer.writerow([
                row.date_display,
                row.entry_time,
                row.exit_time,
                row.duration_display,
                "" if row.duration_minutes is None else row.duration_minutes,
                row.status,
                " ".join(row.anomalies),
            ])
        yield buffer.getvalue()

    return StreamingResponse(
        iter_csv(),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=shifts_{first.isoformat()}_{last.isoformat()}.csv"
        },
    )
