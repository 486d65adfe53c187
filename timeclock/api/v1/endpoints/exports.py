"""
Bulk punch export for admins and managers.

One CSV row per punch (corrections applied) with the overtime request of the
punch's local day and its review / correction flags.  Semicolon separated with
a BOM so spreadsheet software opens it with the right encoding.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import (check_date_range, client_ip, get_db,
                                   require_reviewer)
from timeclock.models.user import User
from timeclock.services.clock import (format_date_es, format_time_es,
                                      local_range_bounds, to_local_date_key)
from timeclock.services.store import (add_audit, load_events, load_names,
                                      overtime_by_day, reviewed_punch_ids)

router = APIRouter(tags=["exports"])
logger = logging.getLogger(__name__)

PUNCH_TYPE_LABELS = {
    "IN": "Entrada",
    "OUT": "Salida",
    "BREAK_START": "Inicio Pausa",
    "BREAK_END": "Fin Pausa",
}
OVERTIME_STATUS_LABELS = {
    "pending": "Pendiente",
    "approved": "Aprobado",
    "rejected": "Rechazado",
}
HEADER = [
    "ID",
    "Empleado",
    "Tipo",
    "Fecha",
    "Hora",
    "Latitud",
    "Longitud",
    "Precision_m",
    "Requiere_Revision",
    "Revisado",
    "Corregido",
    "Fuente",
    "Overtime_Minutos",
    "Overtime_Estado",
]


def _yes_no(flag: bool) -> str:
    return "Sí" if flag else "No"


def _blank(value: float | None) -> float | str:
    return "" if value is None else value


@router.get("/exports/punches.csv")
async def export_punches(
    request: Request,
    date_from: date,
    date_to: date,
    employee_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_reviewer),
) -> StreamingResponse:
    """All punches of a local date range, optionally for one employee."""
    check_date_range(date_from, date_to)
    start, end = local_range_bounds(date_from, date_to)
    events = await load_events(
        db, employee_id=employee_id, start=start, end=end, with_corrections=True
    )
    names = await load_names(db, {e.employee_id for e in events})
    reviewed = await reviewed_punch_ids(db, [e.id for e in events])
    overtime = await overtime_by_day(
        db, date_from.isoformat(), date_to.isoformat(), employee_id=employee_id
    )

    rows = []
    for event in events:
        name = names.get(event.employee_id)
        ot = overtime.get((event.employee_id, to_local_date_key(event.timestamp)))
        rows.append([
            event.id,
            f"{name.first_name} {name.last_name}" if name else f"#{event.employee_id}",
            PUNCH_TYPE_LABELS.get(event.type.value, event.type.value),
            format_date_es(event.timestamp),
            format_time_es(event.timestamp),
            _blank(event.latitude),
            _blank(event.longitude),
            _blank(event.accuracy),
            _yes_no(event.needs_review),
            _yes_no(event.id in reviewed),
            _yes_no(event.corrected),
            event.source,
            ot.minutes if ot else 0,
            OVERTIME_STATUS_LABELS.get(ot.status, "") if ot else "",
        ])

    add_audit(
        db, "export", actor_type="user", actor_id=user.id,
        target_type="punches", target_id="bulk",
        details={
            "employee_id": employee_id,
            "from": date_from.isoformat(),
            "to": date_to.isoformat(),
            "count": len(rows),
        },
        ip_address=client_ip(request),
    )
    await db.commit()
    logger.info(
        "Punch export %s..%s employee=%s: %d rows",
        date_from, date_to, employee_id or "all", len(rows),
    )

    def iter_csv():
        buffer = io.StringIO()
        buffer.write("\ufeff")
        writer = csv.writer(buffer, delimiter=";")
        writer.writerow(HEADER)
        writer.writerows(rows)
        yield buffer.getvalue()

    return StreamingResponse(
        iter_csv(),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": (
                f"attachment; filename=punches_{date_from.isoformat()}_{date_to.isoformat()}.csv"
            )
        },
    )
