"""
Settings endpoints: admin-configurable time-accounting rules.

Singleton pattern: only one row in attendance_settings. GET retrieves it,
PUT updates it. If no row exists, one is created from the environment
defaults on first access.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import get_db, require_admin
from timeclock.models.attendance_settings import AttendanceSettings
from timeclock.models.user import User
from timeclock.schemas.attendance import (AttendanceSettingsRead,
                                          AttendanceSettingsUpdate)
from timeclock.services.store import get_attendance_settings

router = APIRouter(tags=["settings"])
logger = logging.getLogger(__name__)


@router.get("/settings", response_model=AttendanceSettingsRead)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> AttendanceSettings:
    """Get the current expected day, overtime threshold and break rules."""
    row = await get_attendance_settings(db)
    await db.commit()
    return row


@router.put("/settings", response_model=AttendanceSettingsRead)
async def update_settings(
    body: AttendanceSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> AttendanceSettings:
    """Update the rules; affects overtime evaluation from the next OUT punch on."""
    row = await get_attendance_settings(db)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(row, field, value)

    await db.commit()
    await db.refresh(row)
    logger.info("Attendance settings updated: %s", changes)
    return row
