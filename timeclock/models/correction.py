"""
Correction & review records: admin workflows layered over punches.

A punch may collect any number of corrections; all of them are kept for
audit and none is treated as authoritative just for being the latest.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from timeclock.db.base import Base


class PunchCorrection(Base):
    __tablename__ = "punch_corrections"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    original_punch_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("punches.id"), nullable=False, index=True
    )
    corrected_by_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    reason: str = Column(Text, nullable=False)  # type: ignore[assignment]
    new_timestamp: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    new_type: str | None = Column(String(20), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class PunchReview(Base):
    __tablename__ = "punch_reviews"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    punch_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("punches.id"), nullable=False, unique=True
    )
    reviewed_by_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    note: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    reviewed_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
