"""
FastAPI dependencies: auth guards and database session.

Staff (User rows) authenticate with access tokens; employees with the
short-lived employee token issued by the PIN login.  Both are read from the
``Authorization`` header first and from an HttpOnly cookie second.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.core.config import settings
from timeclock.core.security import decode_access_token, decode_employee_token
from timeclock.db.session import async_session_factory
from timeclock.models.employee import Employee
from timeclock.models.user import User

# auto_error=False so the cookie can be checked when the header is missing
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_PREFIX}/auth/login",
    auto_error=False,
)
employee_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_PREFIX}/auth/employee-login",
    scheme_name="EmployeeToken",
    auto_error=False,
)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def check_date_range(first: date, last: date) -> None:
    """422 unless *first*..*last* is ordered and at most MAX_REPORT_RANGE_DAYS long (inclusive)."""
    if last < first:
        raise HTTPException(status_code=422, detail="date_to must not be before date_from")
    if (last - first).days + 1 > settings.MAX_REPORT_RANGE_DAYS:
        raise HTTPException(
            status_code=422,
            detail=f"Date range must not exceed {settings.MAX_REPORT_RANGE_DAYS} days",
        )


def _strip_bearer(value: str | None) -> str | None:
    if value and value.startswith("Bearer "):
        return value.split(" ", 1)[1]
    return value


# ── Staff auth ──────────────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode JWT from Header OR Cookie, look up user."""
    final_token = token or _strip_bearer(access_token)

    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not final_token:
        raise credentials_exc

    payload = decode_access_token(final_token)
    if payload is None or payload.get("sub") is None:
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == int(payload["sub"])))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exc
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Only allow admin role to proceed."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


async def require_reviewer(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Admins and managers: corrections, reviews, overtime decisions, reports."""
    if not current_user.can_review:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin or manager privileges required",
        )
    return current_user


async def require_kiosk(
    current_user: User = Depends(get_current_active_user),
) -> User:
    if not current_user.can_run_kiosk:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Kiosk privileges required",
        )
    return current_user


# ── Employee auth ───────────────────────────────────────────────────
async def get_current_employee(
    token: Optional[str] = Depends(employee_scheme),
    employee_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> Employee:
    final_token = token or _strip_bearer(employee_token)
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Employee session missing or expired",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not final_token:
        raise credentials_exc

    payload = decode_employee_token(final_token)
    if payload is None or payload.get("sub") is None:
        raise credentials_exc

    result = await db.execute(select(Employee).where(Employee.id == int(payload["sub"])))
    employee = result.scalar_one_or_none()
    if employee is None:
        raise credentials_exc
    if not employee.is_active:
        raise HTTPException(status_code=403, detail="Employee account is deactivated")
    return employee
