"""
Attendance Settings model: singleton table for admin-configurable rules.

Only one row should ever exist. The admin updates it via the settings API,
and punch recording / reports read it for the expected working day, the
overtime threshold and the break rules. Defaults come from the environment.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer

from timeclock.db.base import Base


class AttendanceSettings(Base):
    __tablename__ = "attendance_settings"

    id: int = Column(Integer, primary_key=True, default=1)  # type: ignore[assignment]
    expected_daily_minutes: int = Column(Integer, nullable=False, default=480)  # type: ignore[assignment]
    overtime_threshold_minutes: int = Column(Integer, nullable=False, default=15)  # type: ignore[assignment]
    no_break_threshold_minutes: int = Column(Integer, nullable=False, default=300)  # type: ignore[assignment]
    break_countdown_minutes: int = Column(Integer, nullable=False, default=20)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
