"""
Employee & Punch models: core business domain.

Punch rows are append-only: corrections and reviews reference them from
their own tables and never update the original row.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, DateTime, Float, ForeignKey, Index,
                        Integer, String, UniqueConstraint)
from sqlalchemy.orm import relationship

from timeclock.db.base import Base


class Employee(Base):
    __tablename__ = "employees"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    first_name: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    last_name: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    email: str | None = Column(String(320), unique=True, nullable=True)  # type: ignore[assignment]
    pin_hash: str | None = Column(String(128), nullable=True)  # type: ignore[assignment]
    # sha256 of the PIN, lets the kiosk find the employee without scanning bcrypt hashes
    pin_lookup: str | None = Column(String(64), unique=True, nullable=True, index=True)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    punches = relationship(
        "Punch",
        back_populates="employee",
        cascade="all, delete-orphan",
    )

    @property
    def has_pin(self) -> bool:
        return self.pin_hash is not None


class Punch(Base):
    __tablename__ = "punches"
    __table_args__ = (
        Index("ix_punches_employee_timestamp", "employee_id", "timestamp"),
        Index("ix_punches_employee_local_date", "employee_id", "local_date"),
        UniqueConstraint("employee_id", "client_request_id", name="uq_punch_client_request"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: int = Column(Integer, ForeignKey("employees.id"), nullable=False)  # type: ignore[assignment]
    type: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    # IN | OUT | BREAK_START | BREAK_END
    timestamp: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    local_date: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # YYYY-MM-DD, Europe/Madrid
    latitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    longitude: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    accuracy: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    needs_review: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    source: str = Column(String(10), nullable=False, default="mobile")  # type: ignore[assignment]  # mobile | kiosk
    signature_sha256: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    signature_signed_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    client_request_id: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    employee = relationship("Employee", back_populates="punches")

    @property
    def signed(self) -> bool:
        return bool(self.signature_sha256)
