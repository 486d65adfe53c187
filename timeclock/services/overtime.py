"""
Overtime evaluator: pure decision for one employee and one local day.

The persistence side (create-or-update of the request row) lives in
`timeclock.services.recorder`; this module never touches the database.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from timeclock.core.errors import OvertimeConfigError
from timeclock.services.events import PunchEvent
from timeclock.services.pairing import pair_punches


@dataclass(frozen=True)
class OvertimeEvaluation:
    daily_minutes: int
    overtime_minutes: int
    should_create_request: bool


def _require_minutes(name: str, value: object) -> int:
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        raise OvertimeConfigError(f"{name} must be an integer number of minutes, got {value!r}")
    if value < 0:
        raise OvertimeConfigError(f"{name} must not be negative, got {value}")
    return value


def daily_minutes(events: Sequence[PunchEvent]) -> int:
    """Worked minutes of one day: valid completed pairs only."""
    return pair_punches(events).total_minutes


def evaluate_overtime(
    events: Sequence[PunchEvent],
    expected_daily_minutes: int,
    overtime_threshold_minutes: int,
) -> OvertimeEvaluation:
    """Decide whether one day's punches warrant an overtime request.

    *events* must already be restricted to a single local day. Reaching the
    threshold exactly does create a request.
    """
    expected = _require_minutes("expected_daily_minutes", expected_daily_minutes)
    threshold = _require_minutes("overtime_threshold_minutes", overtime_threshold_minutes)

    worked = daily_minutes(events)
    overtime = max(0, worked - expected)
    return OvertimeEvaluation(
        daily_minutes=worked,
        overtime_minutes=overtime,
        should_create_request=overtime >= threshold,
    )
