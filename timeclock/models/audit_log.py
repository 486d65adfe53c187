"""
AuditLog model: append-only trail of who did what to which record.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from timeclock.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_log"
    __table_args__ = (Index("ix_audit_target", "target_type", "target_id"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    action: str = Column(String(30), nullable=False)  # type: ignore[assignment]
    # create | correction | review | export | login | overtime_create | overtime_review
    actor_type: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # user | employee
    actor_id: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    target_type: str = Column(String(30), nullable=False)  # type: ignore[assignment]
    target_id: str = Column(String(64), nullable=False)  # type: ignore[assignment]
    details: str | None = Column(Text, nullable=True)  # type: ignore[assignment]  # JSON
    ip_address: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
