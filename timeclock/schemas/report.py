"""Pydantic schemas for the aggregated attendance reports."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from timeclock.schemas.attendance import IntervalRead


class DayReportRead(BaseModel):
    date: str
    first_in: datetime | None
    last_out: datetime | None
    total_minutes: int
    total_display: str
    break_taken: bool
    signed: bool
    corrected: bool
    incidents: list[str]
    intervals: list[IntervalRead]


class EmployeeReportRead(BaseModel):
    employee_id: int
    last_name: str
    first_name: str
    total_minutes: int
    total_display: str
    days: list[DayReportRead]


class AttendanceReportResponse(BaseModel):
    date_from: str
    date_to: str
    generated_at: datetime
    timezone: str
    source: str | None = None
    total_minutes: int
    monotonic: bool
    dataset_hash: str
    employees: list[EmployeeReportRead]


class AuthoritiesReportResponse(AttendanceReportResponse):
    scope: str
    year: int
    month: int | None = None
    week: int | None = None
