"""
Report aggregation: per employee, per local day totals and incident lists.

Punches are bucketed by local calendar day (not UTC date, which misfiles
punches around midnight) and each bucket goes through `pair_punches`.  The
result is plain data; PDF/CSV rendering is somebody else's job.
"""

from __future__ import annotations

import calendar
import hashlib
import json
import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from timeclock.services.events import PunchEvent, PunchType, sort_punches
from timeclock.services.pairing import (PairedInterval, group_by_local_day,
                                        pair_punches)

logger = logging.getLogger(__name__)

NO_BREAK = "NO_BREAK"
CORRECTION_CONFLICT = "CORRECTION_CONFLICT"


@dataclass(frozen=True)
class EmployeeName:
    employee_id: int
    first_name: str
    last_name: str

    @property
    def sort_key(self) -> tuple[str, str, int]:
        return (self.last_name.casefold(), self.first_name.casefold(), self.employee_id)


@dataclass(frozen=True)
class DayReport:
    date: str
    intervals: tuple[PairedInterval, ...]
    total_minutes: int
    first_in: datetime | None
    last_out: datetime | None
    break_taken: bool
    signed: bool
    corrected: bool
    incidents: tuple[str, ...]

    @property
    def has_open_entry(self) -> bool:
        return any(i.exit is None and i.entry is not None for i in self.intervals)


@dataclass(frozen=True)
class EmployeeReport:
    employee_id: int
    first_name: str
    last_name: str
    days: tuple[DayReport, ...]

    @property
    def total_minutes(self) -> int:
        return sum(d.total_minutes for d in self.days)

    @property
    def full_name(self) -> str:
        return f"{self.last_name}, {self.first_name}"


@dataclass(frozen=True)
class AttendanceReport:
    employees: tuple[EmployeeReport, ...]
    monotonic: bool

    @property
    def total_minutes(self) -> int:
        return sum(e.total_minutes for e in self.employees)

    def dataset_hash(self) -> str:
        """SHA-256 over the canonical content, stable for identical data."""
        payload = [
            {
                "id": emp.employee_id,
                "total": emp.total_minutes,
                "days": [
                    {
                        "date": day.date,
                        "first_in": day.first_in.isoformat() if day.first_in else None,
                        "last_out": day.last_out.isoformat() if day.last_out else None,
                        "total": day.total_minutes,
                        "break": day.break_taken,
                        "corrected": day.corrected,
                        "incidents": list(day.incidents),
                    }
                    for day in emp.days
                ],
            }
            for emp in self.employees
        ]
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


# ── Day / employee aggregation ──────────────────────────────────────
def _unique(values: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for v in values:
        seen.setdefault(v, None)
    return tuple(seen)


def summarize_day(
    date_key: str,
    events: Sequence[PunchEvent],
    no_break_threshold_minutes: int,
) -> DayReport:
    result = pair_punches(events)
    total = result.total_minutes
    break_taken = result.had_break_on(date_key)

    incidents = [a.value for a in result.anomalies]
    if total >= no_break_threshold_minutes and not break_taken:
        incidents.append(NO_BREAK)
    if any(e.correction_conflict for e in events):
        incidents.append(CORRECTION_CONFLICT)

    ins = [e for e in events if e.type is PunchType.IN]
    outs = [e for e in events if e.type is PunchType.OUT]
    return DayReport(
        date=date_key,
        intervals=result.intervals,
        total_minutes=total,
        first_in=ins[0].timestamp if ins else None,
        last_out=outs[-1].timestamp if outs else None,
        break_taken=break_taken,
        signed=any(e.signed for e in events),
        corrected=any(e.corrected for e in events),
        incidents=_unique(incidents),
    )


def _first_decrease(stamps: Sequence[datetime]) -> int | None:
    for idx in range(1, len(stamps)):
        if stamps[idx] < stamps[idx - 1]:
            return idx
    return None


def check_monotonic(employees: Sequence[EmployeeReport]) -> bool:
    """Within each employee, interval anchors must never go backwards."""
    ok = True
    for emp in employees:
        stamps = [i.anchor for d in emp.days for i in d.intervals]
        idx = _first_decrease(stamps)
        if idx is not None:
            ok = False
            logger.error(
                "Report ordering not monotonic for employee %d at index %d: %s < %s",
                emp.employee_id,
                idx,
                stamps[idx].isoformat(),
                stamps[idx - 1].isoformat(),
            )
    return ok


def build_report(
    events: Iterable[PunchEvent],
    names: Mapping[int, EmployeeName],
    *,
    no_break_threshold_minutes: int = 300,
) -> AttendanceReport:
    """Aggregate punches of many employees into per-employee, per-day reports.

    Employees are ordered by surname, given name and id; days chronologically.
    """
    by_employee: dict[int, list[PunchEvent]] = defaultdict(list)
    for event in sort_punches(events):
        by_employee[event.employee_id].append(event)

    reports = []
    for emp_id, emp_events in by_employee.items():
        name = names.get(emp_id) or EmployeeName(emp_id, "", f"#{emp_id}")
        days = tuple(
            summarize_day(key, day_events, no_break_threshold_minutes)
            for key, day_events in group_by_local_day(emp_events).items()
        )
        reports.append(EmployeeReport(emp_id, name.first_name, name.last_name, days))

    reports.sort(key=lambda r: EmployeeName(r.employee_id, r.first_name, r.last_name).sort_key)
    monotonic = check_monotonic(reports)
    logger.info(
        "Built report: %d employees, %d days, monotonic=%s",
        len(reports),
        sum(len(r.days) for r in reports),
        monotonic,
    )
    return AttendanceReport(employees=tuple(reports), monotonic=monotonic)


# ── Periods ─────────────────────────────────────────────────────────
def iso_weeks_in_year(year: int) -> int:
    # Dec 28 always falls in the last ISO week of its year
    return date(year, 12, 28).isocalendar()[1]


def resolve_period(
    scope: str,
    year: int,
    month: int | None = None,
    week: int | None = None,
) -> tuple[date, date]:
    """First and last local day of a ``week``, ``month`` or ``year`` reporting period.

    Weeks are ISO weeks (Monday to Sunday) of the ISO year *year*, so week 1
    can start in December of the previous calendar year.
    """
    if not 2020 <= year <= 2100:
        raise ValueError("Year must be between 2020 and 2100")
    if scope == "year":
        return date(year, 1, 1), date(year, 12, 31)
    if scope == "month":
        if month is None or not 1 <= month <= 12:
            raise ValueError("Month must be between 1 and 12")
        _, last = calendar.monthrange(year, month)
        return date(year, month, 1), date(year, month, last)
    if scope == "week":
        weeks = iso_weeks_in_year(year)
        if week is None or not 1 <= week <= weeks:
            raise ValueError(f"Week must be between 1 and {weeks} for {year}")
        monday = date.fromisocalendar(year, week, 1)
        return monday, monday + timedelta(days=6)
    raise ValueError("Scope must be 'week', 'month' or 'year'")
