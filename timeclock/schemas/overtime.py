"""Pydantic schemas for overtime requests."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, field_validator


class OvertimeRequestRead(BaseModel):
    id: int
    employee_id: int
    employee_name: str | None = None
    date: str
    minutes: int
    reason: str
    status: str
    reviewer_id: int | None
    reviewer_comment: str | None
    created_at: datetime | None
    reviewed_at: datetime | None

    model_config = {"from_attributes": True}


class OvertimeReview(BaseModel):
    status: Literal["approved", "rejected"]
    comment: str

    @field_validator("comment")
    @classmethod
    def _comment(cls, v: str) -> str:
        return v.strip()
