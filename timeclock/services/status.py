"""
Live duty state derived from an employee's punch history.

OFF -> ON -> BREAK -> ON -> OFF.  BREAK is a sub-state of ON and is only
reachable from it.  Nothing here is persisted; the state is recomputed from
punches on every request.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from timeclock.core.errors import StateConflictError
from timeclock.services.events import PunchEvent, PunchType, sort_punches


class DutyState(str, Enum):
    OFF = "OFF"
    ON = "ON"
    BREAK = "BREAK"


@dataclass(frozen=True)
class EmployeeStatus:
    state: DutyState
    pause_already_taken: bool = False
    break_started_at: datetime | None = None
    last_work_punch: PunchEvent | None = None
    last_punch: PunchEvent | None = None

    @property
    def allowed_actions(self) -> tuple[PunchType, ...]:
        if self.state is DutyState.OFF:
            return (PunchType.IN,)
        if self.state is DutyState.BREAK:
            return (PunchType.BREAK_END,)
        if self.pause_already_taken:
            return (PunchType.OUT,)
        return (PunchType.OUT, PunchType.BREAK_START)

    def break_ends_at(self, countdown_minutes: int) -> datetime | None:
        if self.break_started_at is None:
            return None
        return self.break_started_at + timedelta(minutes=countdown_minutes)


def derive_status(events: Sequence[PunchEvent]) -> EmployeeStatus:
    ordered = sort_punches(events)
    if not ordered:
        return EmployeeStatus(DutyState.OFF)

    last_punch = ordered[-1]
    last_work = next((e for e in reversed(ordered) if e.type.is_work), None)

    if last_work is None or last_work.type is PunchType.OUT:
        return EmployeeStatus(DutyState.OFF, last_work_punch=last_work, last_punch=last_punch)

    pause_taken = any(
        e.type is PunchType.BREAK_END and e.timestamp > last_work.timestamp for e in ordered
    )
    if last_punch.type is PunchType.BREAK_START:
        return EmployeeStatus(
            DutyState.BREAK,
            pause_already_taken=pause_taken,
            break_started_at=last_punch.timestamp,
            last_work_punch=last_work,
            last_punch=last_punch,
        )
    return EmployeeStatus(
        DutyState.ON,
        pause_already_taken=pause_taken,
        last_work_punch=last_work,
        last_punch=last_punch,
    )


_CONFLICTS = {
    (PunchType.IN, DutyState.ON): ("ALREADY_ON", "Already clocked in. Clock out first."),
    (PunchType.IN, DutyState.BREAK): ("ON_BREAK", "A break is in progress. End the break first."),
    (PunchType.OUT, DutyState.OFF): ("NOT_ON", "Not clocked in. Clock in first."),
    (PunchType.OUT, DutyState.BREAK): ("ON_BREAK", "A break is in progress. End the break first."),
    (PunchType.BREAK_START, DutyState.OFF): ("NOT_ON", "Must be on duty to start a break."),
    (PunchType.BREAK_START, DutyState.BREAK): ("ON_BREAK", "A break is already in progress."),
    (PunchType.BREAK_END, DutyState.OFF): ("NOT_ON_BREAK", "No active break."),
    (PunchType.BREAK_END, DutyState.ON): ("NOT_ON_BREAK", "No active break."),
}


def ensure_action_allowed(status: EmployeeStatus, action: PunchType) -> None:
    """Raise `StateConflictError` if *action* is not allowed in *status*."""
    if action in status.allowed_actions:
        return
    code, message = _CONFLICTS.get(
        (action, status.state),
        ("PAUSE_ALREADY_TAKEN", "A break has already been taken during this shift."),
    )
    raise StateConflictError(code, message, state=status.state.value)
