"""
Clock normalization: every timestamp becomes an aware UTC instant, and every
instant can be mapped to a calendar day in the fixed civil timezone.

Local-day arithmetic always goes through the tz database (``zoneinfo``), never
through a fixed offset, so the CET/CEST switch is handled: a local
midnight-to-midnight window is 23 hours long in March and 25 hours in October.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from timeclock.core.errors import ClockDecodeError

logger = logging.getLogger(__name__)

TIMEZONE_NAME = "Europe/Madrid"
LOCAL_TZ = ZoneInfo(TIMEZONE_NAME)

# Numeric epochs below this are seconds, otherwise milliseconds.
_EPOCH_MS_CUTOFF = 10**12
_ONE_MS = timedelta(milliseconds=1)

Instantish = datetime | str | int | float | None


# ── Decoding ────────────────────────────────────────────────────────
def parse_instant(value: Instantish) -> datetime:
    """Decode *value* into an aware UTC datetime or raise ``ClockDecodeError``.

    Accepted inputs: ``datetime`` (naive values are taken as UTC), numeric
    epochs in seconds or milliseconds, and ISO-8601 strings with or without
    an offset (strings without one are taken as UTC).
    """
    if value is None or isinstance(value, bool):
        raise ClockDecodeError(value)

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ClockDecodeError(value)
        seconds = value if abs(value) < _EPOCH_MS_CUTOFF else value / 1000
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise ClockDecodeError(value) from exc

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ClockDecodeError(value)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ClockDecodeError(value) from exc
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    raise ClockDecodeError(value)


def ensure_utc(value: Instantish) -> datetime | None:
    """Like :func:`parse_instant` but returns ``None`` instead of raising."""
    if value is None:
        return None
    try:
        return parse_instant(value)
    except ClockDecodeError:
        logger.warning("Discarding undecodable timestamp %r", value)
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Local calendar days ─────────────────────────────────────────────
def local_date(instant: datetime) -> date:
    """Calendar date of *instant* on the local civil clock."""
    return parse_instant(instant).astimezone(LOCAL_TZ).date()


def to_local_date_key(instant: datetime) -> str:
    """``YYYY-MM-DD`` of *instant* in local civil time."""
    return local_date(instant).isoformat()


def parse_date_key(key: str) -> date:
    try:
        return date.fromisoformat(key.strip())
    except (AttributeError, ValueError) as exc:
        raise ClockDecodeError(key) from exc


def day_start(day: date) -> datetime:
    """UTC instant of local midnight opening *day*."""
    return datetime.combine(day, time.min, tzinfo=LOCAL_TZ).astimezone(timezone.utc)


def day_end(day: date) -> datetime:
    """Last millisecond of *day* in local time, as a UTC instant (display only)."""
    return day_start(day + timedelta(days=1)) - _ONE_MS


def start_of_local_day(instant: datetime) -> datetime:
    return day_start(local_date(instant))


def end_of_local_day(instant: datetime) -> datetime:
    return day_end(local_date(instant))


def local_day_length(day: date) -> timedelta:
    """23h, 24h or 25h depending on the DST transitions inside *day*."""
    return day_start(day + timedelta(days=1)) - day_start(day)


def local_range_bounds(first: date, last: date) -> tuple[datetime, datetime]:
    """Half-open UTC window ``[start, end)`` covering local days *first* through *last*."""
    return day_start(first), day_start(last + timedelta(days=1))


# ── Formatting (es-ES conventions, local wall clock) ────────────────
def to_local(value: Instantish) -> datetime | None:
    instant = ensure_utc(value)
    return instant.astimezone(LOCAL_TZ) if instant else None


def format_date_es(value: Instantish) -> str:
    local = to_local(value)
    return local.strftime("%d/%m/%Y") if local else "-"


def format_time_es(value: Instantish, with_seconds: bool = False) -> str:
    local = to_local(value)
    if local is None:
        return "-"
    return local.strftime("%H:%M:%S" if with_seconds else "%H:%M")


def format_datetime_es(value: Instantish, with_seconds: bool = False) -> str:
    local = to_local(value)
    if local is None:
        return "-"
    return local.strftime("%d/%m/%Y %H:%M:%S" if with_seconds else "%d/%m/%Y %H:%M")


def format_duration(minutes: int | None, in_progress: bool = False) -> str:
    """``45m``, ``3h 05m``; ``En curso`` while open, ``—`` when unknown."""
    if in_progress:
        return "En curso"
    if minutes is None or minutes < 0:
        return "—"
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h {minutes % 60:02d}m"


def format_hhmm(minutes: int) -> str:
    if minutes <= 0:
        return "00:00"
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


# ── Self check ──────────────────────────────────────────────────────
_DST_PROBES = (
    ("2026-02-25T22:01:00Z", "23:01"),  # CET, UTC+1
    ("2026-07-01T12:00:00Z", "14:00"),  # CEST, UTC+2
)


def verify_timezone_support() -> tuple[bool, str]:
    """Check that the tz database renders both sides of the DST switch correctly."""
    ok = True
    parts = []
    for probe, expected in _DST_PROBES:
        got = format_time_es(probe)
        good = got == expected
        ok = ok and good
        parts.append(f"{probe} -> {got} (expect {expected}) {'ok' if good else 'FAIL'}")
    parts.append(f"tz={TIMEZONE_NAME}")
    return ok, " | ".join(parts)
