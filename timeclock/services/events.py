"""
Immutable punch events and the correction overlay.

Everything downstream (pairing, status, overtime, reports) consumes
`PunchEvent` values, never ORM rows, so the engine stays pure and testable.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from timeclock.services.clock import ensure_utc

logger = logging.getLogger(__name__)


class PunchType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    BREAK_START = "BREAK_START"
    BREAK_END = "BREAK_END"

    @property
    def is_work(self) -> bool:
        return self in (PunchType.IN, PunchType.OUT)


class PunchSource(str, Enum):
    MOBILE = "mobile"
    KIOSK = "kiosk"


@dataclass(frozen=True)
class PunchEvent:
    id: int
    employee_id: int
    type: PunchType
    timestamp: datetime
    source: str = PunchSource.MOBILE.value
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    needs_review: bool = False
    signed: bool = False
    corrected: bool = False
    correction_conflict: bool = False

    @property
    def sort_key(self) -> tuple[datetime, int]:
        # Ids are assigned in creation order, so they break same-instant ties.
        return (self.timestamp, self.id)


@dataclass(frozen=True)
class Correction:
    original_punch_id: int
    reason: str
    created_at: datetime
    new_timestamp: datetime | None = None
    new_type: PunchType | None = None


def sort_punches(events: Iterable[PunchEvent]) -> list[PunchEvent]:
    """Chronological order, ties broken by creation order."""
    return sorted(events, key=lambda e: e.sort_key)


def to_punch_event(row: Any) -> PunchEvent | None:
    """Build a `PunchEvent` from a persisted punch row (or any look-alike).

    Returns ``None`` when the stored timestamp cannot be decoded.
    """
    ts = ensure_utc(row.timestamp)
    if ts is None:
        return None
    return PunchEvent(
        id=row.id,
        employee_id=row.employee_id,
        type=PunchType(row.type),
        timestamp=ts,
        source=row.source,
        latitude=row.latitude,
        longitude=row.longitude,
        accuracy=row.accuracy,
        needs_review=bool(row.needs_review),
        signed=bool(getattr(row, "signature_sha256", None)),
    )


def to_punch_events(rows: Iterable[Any]) -> list[PunchEvent]:
    events = []
    for row in rows:
        event = to_punch_event(row)
        if event is None:
            logger.warning("Skipping punch %s: undecodable timestamp", getattr(row, "id", "?"))
            continue
        events.append(event)
    return sort_punches(events)


def to_correction(row: Any) -> Correction:
    return Correction(
        original_punch_id=row.original_punch_id,
        reason=row.reason,
        created_at=ensure_utc(row.created_at) or datetime.min,
        new_timestamp=ensure_utc(row.new_timestamp),
        new_type=PunchType(row.new_type) if row.new_type else None,
    )


def _agreed(values: Sequence[Any]) -> tuple[Any, bool]:
    """Return (value, conflict) for the non-null proposals of one field."""
    proposals = [v for v in values if v is not None]
    if not proposals:
        return None, False
    if all(p == proposals[0] for p in proposals):
        return proposals[0], False
    return None, True


def apply_corrections(
    events: Iterable[PunchEvent],
    corrections: Iterable[Correction],
) -> list[PunchEvent]:
    """Overlay corrections on punches without touching the originals.

    A field is replaced only when every correction of that punch that mentions
    it proposes the same value. Disagreeing corrections leave the original value
    in place and mark the punch with ``correction_conflict``; nothing is
    reconciled automatically. The result is re-sorted since corrected
    timestamps may move punches.
    """
    by_punch: dict[int, list[Correction]] = defaultdict(list)
    for correction in corrections:
        by_punch[correction.original_punch_id].append(correction)

    overlaid = []
    for event in events:
        found = by_punch.get(event.id)
        if not found:
            overlaid.append(event)
            continue
        new_ts, ts_conflict = _agreed([c.new_timestamp for c in found])
        new_type, type_conflict = _agreed([c.new_type for c in found])
        conflict = ts_conflict or type_conflict
        if conflict:
            logger.warning("Punch %d has conflicting corrections; keeping original values", event.id)
        overlaid.append(
            replace(
                event,
                timestamp=new_ts or event.timestamp,
                type=new_type or event.type,
                corrected=True,
                correction_conflict=conflict,
            )
        )
    return sort_punches(overlaid)
