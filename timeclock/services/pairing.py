"""
Punch pairing engine: the one place where IN/OUT punches become intervals.

Live duration display, the admin punch list, the employee shift export and the
compliance reports all call `pair_punches`; none of them re-derive pairs.

Rules, applied to a single employee's punches in chronological order:

* A single "open entry" slot.  An IN while the slot is occupied closes the
  previous entry as an orphan (``IN_WITHOUT_OUT``, plus ``DOUBLE_IN`` when both
  INs fall on the same local day) and opens the slot again.
* An OUT pairs with the open entry.  Duration is ``floor(minutes)``; a negative
  duration is reported as ``None`` with ``EXIT_BEFORE_ENTRY``, never clamped.
  An OUT with nothing open is an orphan (``OUT_WITHOUT_IN``, plus
  ``DOUBLE_OUT`` when an earlier OUT fell on the same local day with no IN in
  between).
* Breaks never take part in pairing; they only mark the day as having a break.
* An entry still open at the end of the stream is the normal "clocked in"
  case: ``is_in_progress`` and no anomaly.

Every IN and OUT ends up in exactly one interval slot.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from timeclock.core.errors import MalformedSequenceError
from timeclock.services.clock import to_local_date_key
from timeclock.services.events import PunchEvent, PunchType

_MINUTE = timedelta(minutes=1)


class Anomaly(str, Enum):
    IN_WITHOUT_OUT = "IN_WITHOUT_OUT"
    OUT_WITHOUT_IN = "OUT_WITHOUT_IN"
    DOUBLE_IN = "DOUBLE_IN"
    DOUBLE_OUT = "DOUBLE_OUT"
    EXIT_BEFORE_ENTRY = "EXIT_BEFORE_ENTRY"


@dataclass(frozen=True)
class PairedInterval:
    entry: PunchEvent | None
    exit: PunchEvent | None
    duration_minutes: int | None
    is_in_progress: bool = False
    anomalies: tuple[Anomaly, ...] = ()

    @property
    def is_complete(self) -> bool:
        """Entry and exit both present with a valid, non-negative duration."""
        return (
            self.entry is not None
            and self.exit is not None
            and self.duration_minutes is not None
        )

    @property
    def anchor(self) -> datetime:
        event = self.entry or self.exit
        assert event is not None
        return event.timestamp

    @property
    def local_date(self) -> str:
        return to_local_date_key(self.anchor)


@dataclass(frozen=True)
class PairingResult:
    intervals: tuple[PairedInterval, ...]
    break_days: tuple[str, ...] = ()

    @property
    def total_minutes(self) -> int:
        """Sum over valid completed intervals; orphans count as zero."""
        return sum(i.duration_minutes for i in self.intervals if i.is_complete)  # type: ignore[misc]

    @property
    def anomalies(self) -> tuple[Anomaly, ...]:
        return tuple(a for i in self.intervals for a in i.anomalies)

    @property
    def open_interval(self) -> PairedInterval | None:
        if self.intervals and self.intervals[-1].is_in_progress:
            return self.intervals[-1]
        return None

    def had_break_on(self, date_key: str) -> bool:
        return date_key in self.break_days


def duration_minutes(entry_at: datetime, exit_at: datetime) -> int | None:
    """Whole minutes from entry to exit, or ``None`` if exit precedes entry."""
    minutes = (exit_at - entry_at) // _MINUTE
    return None if minutes < 0 else minutes


def _check_single_employee(events: Sequence[PunchEvent]) -> None:
    employees = {e.employee_id for e in events}
    if len(employees) > 1:
        raise MalformedSequenceError(
            f"Pairing expects one employee per sequence, got {sorted(employees)}"
        )


def pair_punches(events: Sequence[PunchEvent]) -> PairingResult:
    """Pair one employee's punches, taken in the order given.

    Callers pass punches sorted with `sort_punches`; an out-of-order pair shows
    up as ``EXIT_BEFORE_ENTRY`` rather than being silently fixed.
    """
    _check_single_employee(events)

    intervals: list[PairedInterval] = []
    break_days: set[str] = set()
    open_entry: PunchEvent | None = None
    last_out_day: str | None = None

    for event in events:
        day = to_local_date_key(event.timestamp)

        if event.type is PunchType.BREAK_START:
            break_days.add(day)
            continue
        if event.type is PunchType.BREAK_END:
            continue

        if event.type is PunchType.IN:
            if open_entry is not None:
                anomalies = [Anomaly.IN_WITHOUT_OUT]
                if to_local_date_key(open_entry.timestamp) == day:
                    anomalies.append(Anomaly.DOUBLE_IN)
                intervals.append(PairedInterval(open_entry, None, None, False, tuple(anomalies)))
            open_entry = event
            last_out_day = None
            continue

        # OUT
        if open_entry is not None:
            minutes = duration_minutes(open_entry.timestamp, event.timestamp)
            anomalies = () if minutes is not None else (Anomaly.EXIT_BEFORE_ENTRY,)
            intervals.append(PairedInterval(open_entry, event, minutes, False, anomalies))
            open_entry = None
        else:
            orphan = [Anomaly.OUT_WITHOUT_IN]
            if last_out_day == day:
                orphan.append(Anomaly.DOUBLE_OUT)
            intervals.append(PairedInterval(None, event, None, False, tuple(orphan)))
        last_out_day = day

    if open_entry is not None:
        intervals.append(PairedInterval(open_entry, None, None, True, ()))

    return PairingResult(intervals=tuple(intervals), break_days=tuple(sorted(break_days)))


def worked_minutes(result: PairingResult, now: datetime | None = None) -> int:
    """Completed minutes, plus elapsed time of the open interval when *now* is given."""
    total = result.total_minutes
    current = result.open_interval
    if now is not None and current is not None and current.entry is not None:
        total += duration_minutes(current.entry.timestamp, now) or 0
    return total


def group_by_local_day(events: Iterable[PunchEvent]) -> dict[str, list[PunchEvent]]:
    """Bucket events by local calendar day, keys in chronological order.

    Input order is preserved inside each bucket.
    """
    buckets: dict[str, list[PunchEvent]] = defaultdict(list)
    for event in events:
        buckets[to_local_date_key(event.timestamp)].append(event)
    return {key: buckets[key] for key in sorted(buckets)}
