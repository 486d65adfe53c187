"""Tests for automatic overtime requests, their review and the settings endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import punch
from timeclock.models.audit_log import AuditLog
from timeclock.models.overtime import OvertimeRequest
from timeclock.services.recorder import upsert_overtime
from timeclock.services.store import get_attendance_settings


async def _long_day(client: AsyncClient, headers: dict) -> dict:
    """08:00-17:30 local (summer): 570 minutes, 90 over the default 480."""
    await punch(client, headers, "IN", "2025-06-10T06:00:00Z")
    resp = await punch(client, headers, "OUT", "2025-06-10T15:30:00Z")
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_out_creates_pending_request(async_client: AsyncClient, employee: dict):
    data = await _long_day(async_client, employee["headers"])
    overtime = data["overtime"]
    assert overtime["date"] == "2025-06-10"
    assert overtime["daily_minutes"] == 570
    assert overtime["overtime_minutes"] == 90
    assert overtime["should_create_request"] is True
    assert overtime["request_status"] == "pending"

    listed = await async_client.get("/api/v1/overtime-requests")
    assert listed.status_code == 200
    (req,) = listed.json()
    assert req["id"] == overtime["request_id"]
    assert req["minutes"] == 90
    assert req["reason"] == "AUTO"
    assert req["employee_name"] == "Lucia Garcia"


@pytest.mark.asyncio
async def test_pending_request_is_updated_not_duplicated(
    async_client: AsyncClient, employee: dict, db_session: AsyncSession
):
    h = employee["headers"]
    first = await _long_day(async_client, h)
    await punch(async_client, h, "IN", "2025-06-10T16:00:00Z")
    second = (await punch(async_client, h, "OUT", "2025-06-10T17:00:00Z")).json()

    assert second["overtime"]["request_id"] == first["overtime"]["request_id"]
    assert second["overtime"]["overtime_minutes"] == 150

    rows = (await db_session.execute(select(OvertimeRequest))).scalars().all()
    assert len(rows) == 1
    assert rows[0].minutes == 150

    audits = (
        await db_session.execute(select(AuditLog).where(AuditLog.action == "overtime_create"))
    ).scalars().all()
    assert len(audits) == 2


@pytest.mark.asyncio
async def test_short_day_creates_nothing(async_client: AsyncClient, employee: dict):
    h = employee["headers"]
    await punch(async_client, h, "IN", "2025-06-10T07:00:00Z")
    resp = await punch(async_client, h, "OUT", "2025-06-10T15:14:00Z")
    assert resp.json()["overtime"]["overtime_minutes"] == 14
    assert resp.json()["overtime"]["request_id"] is None
    assert (await async_client.get("/api/v1/overtime-requests")).json() == []


@pytest.mark.asyncio
async def test_review_request(async_client: AsyncClient, employee: dict):
    data = await _long_day(async_client, employee["headers"])
    req_id = data["overtime"]["request_id"]

    short = await async_client.post(
        f"/api/v1/overtime-requests/{req_id}/review", json={"status": "approved", "comment": "ok"}
    )
    assert short.status_code == 422

    resp = await async_client.post(
        f"/api/v1/overtime-requests/{req_id}/review",
        json={"status": "approved", "comment": "Inventory day"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "approved"
    assert body["reviewer_id"] == 1
    assert body["reviewer_comment"] == "Inventory day"
    assert body["reviewed_at"] is not None

    again = await async_client.post(
        f"/api/v1/overtime-requests/{req_id}/review",
        json={"status": "rejected", "comment": "Changed my mind"},
    )
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_review_unknown_request(async_client: AsyncClient):
    resp = await async_client.post(
        "/api/v1/overtime-requests/999/review", json={"status": "rejected", "comment": "Not found"}
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_invalid_review_status(async_client: AsyncClient, employee: dict):
    data = await _long_day(async_client, employee["headers"])
    resp = await async_client.post(
        f"/api/v1/overtime-requests/{data['overtime']['request_id']}/review",
        json={"status": "pending", "comment": "Back to pending"},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_processed_request_is_left_untouched(async_client: AsyncClient, employee: dict):
    h = employee["headers"]
    data = await _long_day(async_client, h)
    req_id = data["overtime"]["request_id"]
    await async_client.post(
        f"/api/v1/overtime-requests/{req_id}/review",
        json={"status": "approved", "comment": "Inventory day"},
    )

    await punch(async_client, h, "IN", "2025-06-10T16:00:00Z")
    later = (await punch(async_client, h, "OUT", "2025-06-10T18:00:00Z")).json()
    assert later["overtime"]["overtime_minutes"] == 210
    assert later["overtime"]["request_id"] == req_id
    assert later["overtime"]["request_status"] == "approved"

    (req,) = (await async_client.get("/api/v1/overtime-requests")).json()
    assert req["minutes"] == 90
    assert req["status"] == "approved"


@pytest.mark.asyncio
async def test_filter_by_status(async_client: AsyncClient, employee: dict):
    await _long_day(async_client, employee["headers"])
    assert len((await async_client.get("/api/v1/overtime-requests?status=pending")).json()) == 1
    assert (await async_client.get("/api/v1/overtime-requests?status=approved")).json() == []


# ── Settings ────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_settings_defaults_and_update(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/settings")
    assert resp.status_code == 200
    assert resp.json() == {
        "expected_daily_minutes": 480,
        "overtime_threshold_minutes": 15,
        "no_break_threshold_minutes": 300,
        "break_countdown_minutes": 20,
    }

    resp = await async_client.put("/api/v1/settings", json={"expected_daily_minutes": 420})
    assert resp.status_code == 200
    assert resp.json()["expected_daily_minutes"] == 420
    assert resp.json()["overtime_threshold_minutes"] == 15

    bad = await async_client.put("/api/v1/settings", json={"overtime_threshold_minutes": -1})
    assert bad.status_code == 422


@pytest.mark.asyncio
async def test_settings_drive_overtime(async_client: AsyncClient, employee: dict):
    await async_client.put("/api/v1/settings", json={"expected_daily_minutes": 420})
    h = employee["headers"]
    await punch(async_client, h, "IN", "2025-06-10T07:00:00Z")
    resp = await punch(async_client, h, "OUT", "2025-06-10T15:00:00Z")
    assert resp.json()["overtime"]["overtime_minutes"] == 60
    assert resp.json()["overtime"]["request_status"] == "pending"


@pytest.mark.asyncio
async def test_upsert_rerun_on_unchanged_day_is_a_no_op(
    async_client: AsyncClient, employee: dict, db_session: AsyncSession
):
    first = await _long_day(async_client, employee["headers"])
    att = await get_attendance_settings(db_session)

    again = await upsert_overtime(db_session, employee["id"], "2025-06-10", att)
    await db_session.commit()

    assert again.evaluation.overtime_minutes == 90
    assert again.created is False and again.updated is False
    assert again.request.id == first["overtime"]["request_id"]
    rows = (await db_session.execute(select(OvertimeRequest))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_out_in_last_millisecond_of_local_day_counts(async_client: AsyncClient, employee: dict):
    """22:00Z is local midnight in summer; an OUT just before it belongs to that day."""
    h = employee["headers"]
    await punch(async_client, h, "IN", "2025-06-10T06:00:00Z")
    resp = await punch(async_client, h, "OUT", "2025-06-10T21:59:59.9995Z")
    assert resp.status_code == 201, resp.text
    assert resp.json()["punch"]["local_date"] == "2025-06-10"

    overtime = resp.json()["overtime"]
    assert overtime["date"] == "2025-06-10"
    assert overtime["daily_minutes"] == 959
    assert overtime["overtime_minutes"] == 479
    assert overtime["request_status"] == "pending"
