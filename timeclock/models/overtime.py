"""
OvertimeRequest model: at most one per employee per local day.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Column, DateTime, ForeignKey, Index, Integer, String,
                        UniqueConstraint)

from timeclock.db.base import Base


class OvertimeRequest(Base):
    __tablename__ = "overtime_requests"
    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_overtime_emp_date"),
        Index("ix_overtime_status", "status"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    date: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # local YYYY-MM-DD
    day_start: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    minutes: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    reason: str = Column(String(20), nullable=False, default="AUTO")  # type: ignore[assignment]  # AUTO | MANUAL
    status: str = Column(String(20), nullable=False, default="pending")  # type: ignore[assignment]
    # pending | approved | rejected
    reviewer_id: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    reviewer_comment: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    reviewed_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
