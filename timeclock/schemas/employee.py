"""Pydantic schemas for Employee CRUD."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator


def _clean_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name must not be empty")
    if len(v) > 100:
        raise ValueError("Name must not exceed 100 characters")
    return v


def _clean_pin(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not v.isdigit() or not 4 <= len(v) <= 8:
        raise ValueError("PIN must be 4-8 digits")
    return v


def _clean_email(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip().lower()
    if not v:
        return None
    if "@" not in v:
        raise ValueError("Invalid email address")
    return v


class EmployeeCreate(BaseModel):
    first_name: str
    last_name: str
    email: str | None = None
    pin: str | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def _names(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("pin")
    @classmethod
    def _pin(cls, v: str | None) -> str | None:
        return _clean_pin(v)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str | None) -> str | None:
        return _clean_email(v)


class EmployeeUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    pin: str | None = None
    is_active: bool | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def _names(cls, v: str | None) -> str | None:
        return None if v is None else _clean_name(v)

    @field_validator("pin")
    @classmethod
    def _pin(cls, v: str | None) -> str | None:
        return _clean_pin(v)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str | None) -> str | None:
        return _clean_email(v)


class EmployeeRead(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str | None
    has_pin: bool
    is_active: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


class EmployeeList(BaseModel):
    total: int
    items: list[EmployeeRead]
