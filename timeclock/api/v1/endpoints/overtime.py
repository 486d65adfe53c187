"""
Overtime request listing and review.

Requests are created and refreshed automatically on every OUT punch (see
`timeclock.services.recorder.upsert_overtime`); staff only decide on them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import (client_ip, get_current_active_user, get_db,
                                   require_reviewer)
from timeclock.core.config import settings
from timeclock.models.employee import Employee
from timeclock.models.overtime import OvertimeRequest
from timeclock.models.user import User
from timeclock.schemas.overtime import OvertimeRequestRead, OvertimeReview
from timeclock.services.locks import overtime_locks
from timeclock.services.store import add_audit

router = APIRouter(prefix="/overtime-requests", tags=["overtime"])
logger = logging.getLogger(__name__)


def _read(req: OvertimeRequest, employee: Employee | None) -> OvertimeRequestRead:
    item = OvertimeRequestRead.model_validate(req)
    if employee is not None:
        item.employee_name = f"{employee.first_name} {employee.last_name}"
    return item


@router.get("", response_model=list[OvertimeRequestRead])
async def list_overtime_requests(
    status: Literal["pending", "approved", "rejected"] | None = None,
    employee_id: int | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(get_current_active_user),
) -> list[OvertimeRequestRead]:
    query = select(OvertimeRequest, Employee).join(Employee, Employee.id == OvertimeRequest.employee_id)
    if status is not None:
        query = query.where(OvertimeRequest.status == status)
    if employee_id is not None:
        query = query.where(OvertimeRequest.employee_id == employee_id)
    result = await db.execute(
        query.order_by(OvertimeRequest.date.desc(), OvertimeRequest.id.desc()).limit(limit)
    )
    return [_read(req, emp) for req, emp in result.all()]


@router.post("/{request_id}/review", response_model=OvertimeRequestRead)
async def review_overtime_request(
    request_id: int,
    body: OvertimeReview,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_reviewer),
) -> OvertimeRequestRead:
    """Approve or reject a pending request. Decisions are final."""
    if len(body.comment) < settings.OVERTIME_COMMENT_MIN_LENGTH:
        raise HTTPException(
            status_code=422,
            detail=f"Comment must be at least {settings.OVERTIME_COMMENT_MIN_LENGTH} characters",
        )

    result = await db.execute(select(OvertimeRequest).where(OvertimeRequest.id == request_id))
    req = result.scalar_one_or_none()
    if req is None:
        raise HTTPException(status_code=404, detail="Overtime request not found")

    async with overtime_locks.hold((req.employee_id, req.date)):
        await db.refresh(req)
        if req.status != "pending":
            raise HTTPException(status_code=409, detail=f"Overtime request already {req.status}")

        req.status = body.status
        req.reviewer_id = user.id
        req.reviewer_comment = body.comment
        req.reviewed_at = datetime.now(timezone.utc)
        add_audit(
            db,
            "overtime_review",
            actor_type="user",
            actor_id=user.id,
            target_type="overtime_request",
            target_id=req.id,
            details={"status": body.status, "minutes": req.minutes},
            ip_address=client_ip(request),
        )
        await db.commit()

    await db.refresh(req)
    employee = await db.get(Employee, req.employee_id)
    logger.info("Overtime request %d %s by user %d", req.id, req.status, user.id)
    return _read(req, employee)
