"""Tests for employee CRUD, live status and pairs endpoints."""

import pytest
from httpx import AsyncClient

from conftest import create_employee, employee_headers, punch


@pytest.mark.asyncio
async def test_create_employee(async_client: AsyncClient):
    """POST /employees should create a new employee."""
    resp = await async_client.post("/api/v1/employees", json={
        "first_name": " Marta ",
        "last_name": "Ruiz",
        "email": "Marta@Example.com",
        "pin": "1234",
    })
    assert resp.status_code == 201
    data = resp.json()
    assert data["first_name"] == "Marta"
    assert data["email"] == "marta@example.com"
    assert data["has_pin"] is True
    assert data["is_active"] is True
    assert "pin" not in data and "pin_hash" not in data


@pytest.mark.asyncio
async def test_create_duplicate_pin_rejected(async_client: AsyncClient):
    await create_employee(async_client, "Emp", "One", pin="5555")
    resp = await async_client.post(
        "/api/v1/employees", json={"first_name": "Emp", "last_name": "Two", "pin": "5555"}
    )
    assert resp.status_code == 400
    assert "PIN" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_create_duplicate_email_rejected(async_client: AsyncClient):
    await create_employee(async_client, "Emp", "One", pin="1111", email="dup@example.com")
    resp = await async_client.post(
        "/api/v1/employees",
        json={"first_name": "Emp", "last_name": "Two", "pin": "2222", "email": "DUP@example.com"},
    )
    assert resp.status_code == 400
    assert "already registered" in resp.json()["detail"]


@pytest.mark.asyncio
@pytest.mark.parametrize("pin", ["12", "123456789", "12a4"])
async def test_invalid_pin_rejected(async_client: AsyncClient, pin: str):
    resp = await async_client.post(
        "/api/v1/employees", json={"first_name": "Bad", "last_name": "Pin", "pin": pin}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_employees_sorted_by_surname(async_client: AsyncClient):
    await create_employee(async_client, "Zoe", "Vidal", pin="1001")
    await create_employee(async_client, "Ana", "Blanco", pin="1002")
    await create_employee(async_client, "Luis", "Blanco", pin="1003")
    resp = await async_client.get("/api/v1/employees")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 3
    assert [(e["last_name"], e["first_name"]) for e in data["items"]] == [
        ("Blanco", "Ana"),
        ("Blanco", "Luis"),
        ("Vidal", "Zoe"),
    ]


@pytest.mark.asyncio
async def test_list_employees_pagination_and_search(async_client: AsyncClient):
    for i in range(5):
        await create_employee(async_client, f"P{i}", "Paged", pin=f"200{i}")
    await create_employee(async_client, "Other", "Person", pin="3000")

    page = await async_client.get("/api/v1/employees?skip=2&limit=2")
    assert page.json()["total"] == 6
    assert len(page.json()["items"]) == 2

    found = await async_client.get("/api/v1/employees?search=paged")
    assert found.json()["total"] == 5


@pytest.mark.asyncio
async def test_get_employee_not_found(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/employees/9999")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_employee_and_pin(async_client: AsyncClient):
    emp = await create_employee(async_client, "Old", "Name", pin="4444")
    resp = await async_client.put(
        f"/api/v1/employees/{emp['id']}", json={"first_name": "New", "pin": "4545"}
    )
    assert resp.status_code == 200
    assert resp.json()["first_name"] == "New"
    assert resp.json()["last_name"] == "Name"

    old = await async_client.post("/api/v1/auth/employee-login", json={"pin": "4444"})
    assert old.status_code == 401
    new = await async_client.post("/api/v1/auth/employee-login", json={"pin": "4545"})
    assert new.status_code == 200
    assert new.json()["employee_id"] == emp["id"]


@pytest.mark.asyncio
async def test_delete_deactivates_and_blocks_login(async_client: AsyncClient):
    emp = await create_employee(async_client, "Gone", "Soon", pin="6060")
    resp = await async_client.delete(f"/api/v1/employees/{emp['id']}")
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    listed = await async_client.get("/api/v1/employees")
    assert listed.json()["total"] == 0
    listed = await async_client.get("/api/v1/employees?include_inactive=true")
    assert listed.json()["total"] == 1

    login = await async_client.post("/api/v1/auth/employee-login", json={"pin": "6060"})
    assert login.status_code == 403


@pytest.mark.asyncio
async def test_status_follows_punches(async_client: AsyncClient, employee: dict):
    url = f"/api/v1/employees/{employee['id']}/status"
    assert (await async_client.get(url)).json()["state"] == "OFF"

    await punch(async_client, employee["headers"], "IN")
    status = (await async_client.get(url)).json()
    assert status["state"] == "ON"
    assert status["allowed_actions"] == ["OUT", "BREAK_START"]


@pytest.mark.asyncio
async def test_pairs_for_a_past_day(async_client: AsyncClient, employee: dict):
    h = employee["headers"]
    # 2025-06-10 is summer time: 06:00Z = 08:00 local
    assert (await punch(async_client, h, "IN", "2025-06-10T06:00:00Z")).status_code == 201
    assert (await punch(async_client, h, "OUT", "2025-06-10T10:00:00Z")).status_code == 201
    assert (await punch(async_client, h, "IN", "2025-06-10T11:00:00Z")).status_code == 201
    assert (await punch(async_client, h, "OUT", "2025-06-10T14:30:00Z")).status_code == 201

    resp = await async_client.get(
        f"/api/v1/employees/{employee['id']}/pairs?date_from=2025-06-10&date_to=2025-06-10"
    )
    assert resp.status_code == 200
    data = resp.json()
    assert [i["duration_minutes"] for i in data["intervals"]] == [240, 210]
    assert data["total_minutes"] == 450
    assert data["anomalies"] == []
    assert all(i["date"] == "2025-06-10" for i in data["intervals"])


@pytest.mark.asyncio
async def test_pairs_reversed_range_rejected(async_client: AsyncClient, employee: dict):
    resp = await async_client.get(
        f"/api/v1/employees/{employee['id']}/pairs?date_from=2025-06-10&date_to=2025-06-01"
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_pairs_range_is_capped(async_client: AsyncClient, employee: dict):
    base = f"/api/v1/employees/{employee['id']}/pairs"
    # 2024 is a leap year: 366 days is the largest allowed range
    full_year = await async_client.get(f"{base}?date_from=2024-01-01&date_to=2024-12-31")
    assert full_year.status_code == 200
    too_long = await async_client.get(f"{base}?date_from=2024-01-01&date_to=2025-01-01")
    assert too_long.status_code == 422


@pytest.mark.asyncio
async def test_second_employee_login_gets_own_token(async_client: AsyncClient, employee: dict):
    other = await create_employee(async_client, "Pablo", "Moreno", pin="7777")
    headers = await employee_headers(async_client, "7777")
    resp = await punch(async_client, headers, "IN")
    assert resp.status_code == 201
    assert resp.json()["punch"]["employee_id"] == other["id"]
