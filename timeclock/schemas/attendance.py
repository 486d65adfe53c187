"""Pydantic schemas for punches, live status, pairs, shifts and corrections."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from timeclock.services.events import PunchEvent, PunchType
from timeclock.services.pairing import PairedInterval
from timeclock.services.status import EmployeeStatus

# Raw client timestamp: decoded by the clock module, not by pydantic, so that
# epoch seconds, epoch milliseconds and offset-less strings are all accepted.
RawTimestamp = int | float | str | None


# ── Punch ingestion ─────────────────────────────────────────────────
class _PunchFields(BaseModel):
    timestamp: RawTimestamp = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)
    signature_data: str | None = None
    client_request_id: str | None = Field(default=None, max_length=64)

    @field_validator("client_request_id")
    @classmethod
    def _request_id(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class PunchCreate(_PunchFields):
    type: PunchType


class KioskPunchCreate(_PunchFields):
    type: PunchType
    pin: str

    @field_validator("pin")
    @classmethod
    def _pin(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit() or not 4 <= len(v) <= 8:
            raise ValueError("PIN must be 4-8 digits")
        return v


class PauseRequest(_PunchFields):
    pass


class PunchRead(BaseModel):
    id: int
    employee_id: int
    type: str
    timestamp: datetime
    local_date: str
    source: str
    latitude: float | None
    longitude: float | None
    accuracy: float | None
    needs_review: bool
    signed: bool
    client_request_id: str | None = None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class PunchListItem(PunchRead):
    employee_name: str | None = None
    reviewed: bool = False
    correction_count: int = 0


# ── Status ──────────────────────────────────────────────────────────
class StatusRead(BaseModel):
    employee_id: int
    state: str
    pause_already_taken: bool
    break_started_at: datetime | None = None
    break_ends_at: datetime | None = None
    last_punch_at: datetime | None = None
    allowed_actions: list[str]

    @classmethod
    def build(cls, employee_id: int, status: EmployeeStatus, countdown_minutes: int) -> "StatusRead":
        return cls(
            employee_id=employee_id,
            state=status.state.value,
            pause_already_taken=status.pause_already_taken,
            break_started_at=status.break_started_at,
            break_ends_at=status.break_ends_at(countdown_minutes),
            last_punch_at=status.last_punch.timestamp if status.last_punch else None,
            allowed_actions=[a.value for a in status.allowed_actions],
        )


class OvertimeOutcome(BaseModel):
    date: str
    daily_minutes: int
    overtime_minutes: int
    should_create_request: bool
    request_id: int | None = None
    request_status: str | None = None


class PunchResult(BaseModel):
    punch: PunchRead
    replayed: bool = False
    status: StatusRead
    overtime: OvertimeOutcome | None = None


# ── Pairs / shifts ──────────────────────────────────────────────────
class PunchRef(BaseModel):
    id: int
    type: str
    timestamp: datetime
    source: str
    needs_review: bool = False
    signed: bool = False
    corrected: bool = False
    correction_conflict: bool = False

    @classmethod
    def from_event(cls, event: PunchEvent | None) -> "PunchRef | None":
        if event is None:
            return None
        return cls(
            id=event.id,
            type=event.type.value,
            timestamp=event.timestamp,
            source=event.source,
            needs_review=event.needs_review,
            signed=event.signed,
            corrected=event.corrected,
            correction_conflict=event.correction_conflict,
        )


class IntervalRead(BaseModel):
    date: str
    entry: PunchRef | None
    exit: PunchRef | None
    duration_minutes: int | None
    is_in_progress: bool
    anomalies: list[str]

    @classmethod
    def from_interval(cls, interval: PairedInterval) -> "IntervalRead":
        return cls(
            date=interval.local_date,
            entry=PunchRef.from_event(interval.entry),
            exit=PunchRef.from_event(interval.exit),
            duration_minutes=interval.duration_minutes,
            is_in_progress=interval.is_in_progress,
            anomalies=[a.value for a in interval.anomalies],
        )


class PairsResponse(BaseModel):
    employee_id: int
    date_from: str
    date_to: str
    intervals: list[IntervalRead]
    total_minutes: int
    anomalies: list[str]
    break_days: list[str]


class ShiftRow(BaseModel):
    date: str
    date_display: str
    entry_time: str
    exit_time: str
    duration_minutes: int | None
    duration_display: str
    status: str  # OK | INCOMPLETE | IN_PROGRESS
    anomalies: list[str]


class ShiftsResponse(BaseModel):
    employee_id: int
    date_from: str
    date_to: str
    shifts: list[ShiftRow]
    total_minutes: int
    worked_minutes: int  # includes the open shift up to now


# ── Corrections / review ────────────────────────────────────────────
class CorrectionCreate(BaseModel):
    reason: str
    new_timestamp: RawTimestamp = None
    new_type: PunchType | None = None

    @field_validator("reason")
    @classmethod
    def _reason(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def _something_to_correct(self) -> "CorrectionCreate":
        if self.new_timestamp is None and self.new_type is None:
            raise ValueError("Provide new_timestamp and/or new_type")
        return self


class CorrectionRead(BaseModel):
    id: int
    original_punch_id: int
    corrected_by_id: int
    reason: str
    new_timestamp: datetime | None
    new_type: str | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class ReviewCreate(BaseModel):
    note: str | None = Field(default=None, max_length=500)


class ReviewRead(BaseModel):
    id: int
    punch_id: int
    reviewed_by_id: int
    note: str | None
    reviewed_at: datetime | None

    model_config = {"from_attributes": True}


# ── Health / Status ────────────────────────────────────────────────
class HealthResponse(BaseModel):
    db: bool
    redis: bool


class StatusResponse(BaseModel):
    date: str
    active_employees: int
    punched_today: int
    clocked_in: int
    on_break: int
    needs_review: int
    status: str


class TimezoneDebugResponse(BaseModel):
    timezone: str
    server_utc: str
    local_display: str
    local_date: str
    dst_check_ok: bool
    dst_check_details: str


# ── Attendance Settings ────────────────────────────────────────────
class AttendanceSettingsRead(BaseModel):
    expected_daily_minutes: int
    overtime_threshold_minutes: int
    no_break_threshold_minutes: int
    break_countdown_minutes: int

    model_config = {"from_attributes": True}


class AttendanceSettingsUpdate(BaseModel):
    expected_daily_minutes: int | None = Field(default=None, ge=0, le=24 * 60)
    overtime_threshold_minutes: int | None = Field(default=None, ge=0, le=24 * 60)
    no_break_threshold_minutes: int | None = Field(default=None, ge=0, le=24 * 60)
    break_countdown_minutes: int | None = Field(default=None, ge=0, le=240)


# ── Generic ────────────────────────────────────────────────────────
class LogoutResponse(BaseModel):
    message: str


class DeleteResponse(BaseModel):
    success: bool
    message: str
