"""Pydantic schemas for JWT tokens and PIN login."""

from __future__ import annotations

from pydantic import BaseModel, field_validator


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenPayload(BaseModel):
    sub: str | None = None
    type: str | None = None


class RefreshRequest(BaseModel):
    refresh_token: str


class EmployeeLoginRequest(BaseModel):
    pin: str

    @field_validator("pin")
    @classmethod
    def _pin(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit() or not 4 <= len(v) <= 8:
            raise ValueError("PIN must be 4-8 digits")
        return v


class EmployeeToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    employee_id: int
    first_name: str
    last_name: str
    expires_in: int
