"""Tests for the bulk punch CSV export."""

import csv
import io

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import create_employee, employee_headers, punch
from timeclock.models.audit_log import AuditLog

URL = "/api/v1/exports/punches.csv"


def _rows(text: str) -> list[dict]:
    assert text.startswith("\ufeff")
    return list(csv.DictReader(io.StringIO(text[1:]), delimiter=";"))


async def _setup(client: AsyncClient, employee: dict) -> dict:
    """Overtime day on 10 June, an unlocated (then reviewed) punch on 11 June."""
    h = employee["headers"]
    first_in = (await punch(client, h, "IN", "2025-06-10T06:00:00Z")).json()["punch"]
    out = (await punch(client, h, "OUT", "2025-06-10T15:30:00Z")).json()["punch"]
    unlocated = (
        await punch(client, h, "IN", "2025-06-11T06:00:00Z", latitude=None, longitude=None)
    ).json()["punch"]

    await client.post(
        f"/api/v1/punches/{first_in['id']}/corrections",
        json={"reason": "Arrived earlier, kiosk was down", "new_timestamp": "2025-06-10T05:30:00Z"},
    )
    await client.post(f"/api/v1/punches/{unlocated['id']}/review", json={"note": "Checked"})

    await create_employee(client, "Bea", "Alonso", pin="3131")
    other = await employee_headers(client, "3131")
    bea_in = (await punch(client, other, "IN", "2025-06-10T06:30:00Z")).json()["punch"]
    return {"in": first_in["id"], "out": out["id"], "unlocated": unlocated["id"], "bea": bea_in["id"]}


@pytest.mark.asyncio
async def test_export_joins_overtime_and_flags(async_client: AsyncClient, employee: dict):
    ids = await _setup(async_client, employee)

    resp = await async_client.get(f"{URL}?date_from=2025-06-10&date_to=2025-06-11")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "punches_2025-06-10_2025-06-11.csv" in resp.headers["content-disposition"]

    rows = {int(r["ID"]): r for r in _rows(resp.text)}
    assert set(rows) == set(ids.values())

    out = rows[ids["out"]]
    assert out["Empleado"] == "Lucia Garcia"
    assert out["Tipo"] == "Salida"
    assert (out["Fecha"], out["Hora"]) == ("10/06/2025", "17:30")
    assert out["Latitud"] == "40.4168"
    assert out["Fuente"] == "mobile"
    assert (out["Overtime_Minutos"], out["Overtime_Estado"]) == ("90", "Pendiente")
    assert out["Corregido"] == "No"

    corrected = rows[ids["in"]]
    assert corrected["Corregido"] == "Sí"
    assert corrected["Hora"] == "07:30"
    assert corrected["Overtime_Minutos"] == "90"

    unlocated = rows[ids["unlocated"]]
    assert unlocated["Requiere_Revision"] == "Sí"
    assert unlocated["Revisado"] == "Sí"
    assert unlocated["Latitud"] == ""
    assert (unlocated["Overtime_Minutos"], unlocated["Overtime_Estado"]) == ("0", "")

    bea = rows[ids["bea"]]
    assert bea["Empleado"] == "Bea Alonso"
    assert bea["Overtime_Minutos"] == "0"


@pytest.mark.asyncio
async def test_export_employee_filter_and_audit(
    async_client: AsyncClient, employee: dict, db_session: AsyncSession
):
    ids = await _setup(async_client, employee)

    resp = await async_client.get(
        f"{URL}?date_from=2025-06-10&date_to=2025-06-10&employee_id={employee['id']}"
    )
    rows = _rows(resp.text)
    assert sorted(int(r["ID"]) for r in rows) == sorted([ids["in"], ids["out"]])

    audits = (
        await db_session.execute(select(AuditLog).where(AuditLog.target_type == "punches"))
    ).scalars().all()
    assert len(audits) == 1
    assert audits[0].action == "export"
    assert audits[0].target_id == "bulk"


@pytest.mark.asyncio
async def test_export_range_validation(async_client: AsyncClient):
    reversed_range = await async_client.get(f"{URL}?date_from=2025-06-30&date_to=2025-06-01")
    assert reversed_range.status_code == 422
    too_long = await async_client.get(f"{URL}?date_from=2024-01-01&date_to=2025-01-01")
    assert too_long.status_code == 422
    empty = await async_client.get(f"{URL}?date_from=2025-06-01&date_to=2025-06-30")
    assert _rows(empty.text) == []
