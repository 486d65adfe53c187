"""Tests for duty-state derivation and the action guard."""

from datetime import datetime, timedelta, timezone

import pytest

from timeclock.core.errors import StateConflictError
from timeclock.services.events import PunchEvent, PunchType
from timeclock.services.status import (DutyState, derive_status,
                                       ensure_action_allowed)

BASE = datetime(2026, 4, 14, 7, 0, tzinfo=timezone.utc)


def history(*kinds: str) -> list[PunchEvent]:
    return [
        PunchEvent(id=i + 1, employee_id=3, type=PunchType(kind), timestamp=BASE + timedelta(hours=i))
        for i, kind in enumerate(kinds)
    ]


def test_no_punches_is_off():
    status = derive_status([])
    assert status.state is DutyState.OFF
    assert status.allowed_actions == (PunchType.IN,)
    assert status.last_punch is None


def test_clocked_in_can_leave_or_pause():
    status = derive_status(history("IN"))
    assert status.state is DutyState.ON
    assert status.allowed_actions == (PunchType.OUT, PunchType.BREAK_START)
    assert status.pause_already_taken is False


def test_on_break_has_countdown():
    status = derive_status(history("IN", "BREAK_START"))
    assert status.state is DutyState.BREAK
    assert status.break_started_at == BASE + timedelta(hours=1)
    assert status.break_ends_at(20) == BASE + timedelta(hours=1, minutes=20)
    assert status.allowed_actions == (PunchType.BREAK_END,)


def test_one_break_per_shift():
    status = derive_status(history("IN", "BREAK_START", "BREAK_END"))
    assert status.state is DutyState.ON
    assert status.pause_already_taken is True
    assert status.allowed_actions == (PunchType.OUT,)
    assert status.break_ends_at(20) is None


def test_break_of_previous_shift_does_not_count():
    status = derive_status(history("IN", "BREAK_START", "BREAK_END", "OUT", "IN"))
    assert status.state is DutyState.ON
    assert status.pause_already_taken is False


def test_clocked_out_is_off():
    status = derive_status(history("IN", "OUT"))
    assert status.state is DutyState.OFF
    assert status.last_work_punch.type is PunchType.OUT


def test_unsorted_input_is_ordered_first():
    events = history("IN", "OUT")
    assert derive_status(list(reversed(events))).state is DutyState.OFF


@pytest.mark.parametrize(
    "kinds, action, code",
    [
        ((), "OUT", "NOT_ON"),
        ((), "BREAK_START", "NOT_ON"),
        ((), "BREAK_END", "NOT_ON_BREAK"),
        (("IN",), "IN", "ALREADY_ON"),
        (("IN",), "BREAK_END", "NOT_ON_BREAK"),
        (("IN", "BREAK_START"), "OUT", "ON_BREAK"),
        (("IN", "BREAK_START"), "IN", "ON_BREAK"),
        (("IN", "BREAK_START"), "BREAK_START", "ON_BREAK"),
        (("IN", "BREAK_START", "BREAK_END"), "BREAK_START", "PAUSE_ALREADY_TAKEN"),
    ],
)
def test_forbidden_actions_raise_conflict(kinds, action, code):
    status = derive_status(history(*kinds))
    with pytest.raises(StateConflictError) as exc_info:
        ensure_action_allowed(status, PunchType(action))
    assert exc_info.value.code == code
    assert exc_info.value.state == status.state.value


@pytest.mark.parametrize(
    "kinds, action",
    [((), "IN"), (("IN",), "OUT"), (("IN",), "BREAK_START"), (("IN", "BREAK_START"), "BREAK_END")],
)
def test_allowed_actions_pass(kinds, action):
    ensure_action_allowed(derive_status(history(*kinds)), PunchType(action))
