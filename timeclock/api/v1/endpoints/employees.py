"""
Employee CRUD + live status + paired intervals.

- GET operations require any authenticated staff user.
- POST / PUT / DELETE operations require admin role.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import (check_date_range, get_current_active_user,
                                   get_db, require_admin)
from timeclock.core.security import get_password_hash, pin_lookup_key
from timeclock.models.employee import Employee
from timeclock.models.user import User
from timeclock.schemas.attendance import (DeleteResponse, IntervalRead,
                                          PairsResponse, StatusRead)
from timeclock.schemas.employee import (EmployeeCreate, EmployeeList,
                                        EmployeeRead, EmployeeUpdate)
from timeclock.services.clock import local_range_bounds, utcnow, local_date
from timeclock.services.pairing import pair_punches
from timeclock.services.store import (current_status, get_attendance_settings,
                                      load_events)

router = APIRouter(prefix="/employees", tags=["employees"])
logger = logging.getLogger(__name__)


async def _get_or_404(db: AsyncSession, employee_id: int) -> Employee:
    result = await db.execute(select(Employee).where(Employee.id == employee_id))
    emp = result.scalar_one_or_none()
    if emp is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return emp


async def _ensure_unique(
    db: AsyncSession,
    *,
    email: str | None,
    pin: str | None,
    exclude_id: int | None = None,
) -> None:
    if email:
        query = select(Employee.id).where(Employee.email == email)
        if exclude_id is not None:
            query = query.where(Employee.id != exclude_id)
        if (await db.execute(query)).first():
            raise HTTPException(status_code=400, detail=f"Email '{email}' already registered")
    if pin:
        query = select(Employee.id).where(Employee.pin_lookup == pin_lookup_key(pin))
        if exclude_id is not None:
            query = query.where(Employee.id != exclude_id)
        if (await db.execute(query)).first():
            raise HTTPException(status_code=400, detail="PIN already in use")


def _apply_pin(emp: Employee, pin: str) -> None:
    emp.pin_hash = get_password_hash(pin)
    emp.pin_lookup = pin_lookup_key(pin)


# ── Employee CRUD ───────────────────────────────────────────────────
@router.get("", response_model=EmployeeList)
async def list_employees(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    search: str | None = None,
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> EmployeeList:
    query = select(Employee)
    if not include_inactive:
        query = query.where(Employee.is_active.is_(True))
    if search:
        # Escape SQL LIKE metacharacters to prevent wildcard injection
        safe = search.replace("%", r"\%").replace("_", r"\_")
        pattern = f"%{safe}%"
        query = query.where(
            or_(
                Employee.first_name.ilike(pattern, escape="\\"),
                Employee.last_name.ilike(pattern, escape="\\"),
                Employee.email.ilike(pattern, escape="\\"),
            )
        )
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Employee.last_name, Employee.first_name, Employee.id)
        .offset(skip)
        .limit(limit)
    )
    items = [EmployeeRead.model_validate(e) for e in result.scalars().all()]
    return EmployeeList(total=total, items=items)


@router.post("", response_model=EmployeeRead, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Employee:
    await _ensure_unique(db, email=body.email, pin=body.pin)

    employee = Employee(first_name=body.first_name, last_name=body.last_name, email=body.email)
    if body.pin:
        _apply_pin(employee, body.pin)
    db.add(employee)
    await db.commit()
    await db.refresh(employee)
    logger.info("Created employee %d (%s %s)", employee.id, employee.first_name, employee.last_name)
    return employee


@router.get("/{employee_id}", response_model=EmployeeRead)
async def get_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> Employee:
    return await _get_or_404(db, employee_id)


@router.put("/{employee_id}", response_model=EmployeeRead)
async def update_employee(
    employee_id: int,
    body: EmployeeUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Employee:
    emp = await _get_or_404(db, employee_id)
    changes = body.model_dump(exclude_unset=True)
    await _ensure_unique(
        db, email=changes.get("email"), pin=changes.get("pin"), exclude_id=employee_id
    )

    pin = changes.pop("pin", None)
    if pin:
        _apply_pin(emp, pin)
    for field, value in changes.items():
        if field in ("first_name", "last_name") and value is None:
            continue
        setattr(emp, field, value)

    await db.commit()
    await db.refresh(emp)
    logger.info("Updated employee %d", employee_id)
    return emp


@router.delete("/{employee_id}", response_model=DeleteResponse)
async def delete_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> DeleteResponse:
    """Soft-delete (deactivate) an employee. Punch history is preserved."""
    emp = await _get_or_404(db, employee_id)
    emp.is_active = False
    await db.commit()
    logger.info("Deactivated employee %d", employee_id)
    return DeleteResponse(
        success=True,
        message=f"Employee '{emp.first_name} {emp.last_name}' deactivated",
    )


# ── Status / pairs ──────────────────────────────────────────────────
@router.get("/{employee_id}/status", response_model=StatusRead)
async def employee_status(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> StatusRead:
    await _get_or_404(db, employee_id)
    att = await get_attendance_settings(db)
    status = await current_status(db, employee_id)
    return StatusRead.build(employee_id, status, att.break_countdown_minutes)


@router.get("/{employee_id}/pairs", response_model=PairsResponse)
async def employee_pairs(
    employee_id: int,
    date_from: date | None = None,
    date_to: date | None = None,
    apply_corrections: bool = True,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> PairsResponse:
    """Paired intervals with anomalies for the admin dashboard."""
    await _get_or_404(db, employee_id)
    today = local_date(utcnow())
    first = date_from or today
    last = date_to or first
    check_date_range(first, last)

    start, end = local_range_bounds(first, last)
    events = await load_events(
        db, employee_id=employee_id, start=start, end=end, with_corrections=apply_corrections
    )
    result = pair_punches(events)
    return PairsResponse(
        employee_id=employee_id,
        date_from=first.isoformat(),
        date_to=last.isoformat(),
        intervals=[IntervalRead.from_interval(i) for i in result.intervals],
        total_minutes=result.total_minutes,
        anomalies=[a.value for a in result.anomalies],
        break_days=list(result.break_days),
    )
