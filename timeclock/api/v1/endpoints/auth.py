"""
Auth endpoints: staff login (OAuth2 password flow), token refresh and the
employee PIN login.
"""

import logging

from fastapi import (APIRouter, Cookie, Depends, HTTPException, Request,
                     Response, status)
from fastapi.security import OAuth2PasswordRequestForm
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import (client_ip, get_current_active_user, get_db,
                                   require_admin)
from timeclock.core.config import settings
from timeclock.core.security import (create_access_token,
                                     create_employee_token,
                                     create_refresh_token,
                                     decode_refresh_token, get_password_hash,
                                     pin_lookup_key, verify_password)
from timeclock.models.employee import Employee
from timeclock.models.user import User
from timeclock.schemas.attendance import LogoutResponse
from timeclock.schemas.token import (EmployeeLoginRequest, EmployeeToken,
                                     RefreshRequest, Token)
from timeclock.schemas.user import UserCreate, UserRead
from timeclock.services.store import add_audit

# Rate limiter, keyed by client IP, login endpoints only
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _set_staff_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=f"Bearer {access_token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


@router.post("/login", response_model=Token)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login_for_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> Token:
    """Authenticate with user/pass. Returns 200 OK with HttpOnly Cookies."""
    result = await db.execute(
        select(User).where(User.email == form_data.username.lower().strip())
    )
    user = result.scalar_one_or_none()

    if user is None or not verify_password(form_data.password, user.hashed_password):
        logger.info("Failed staff login for %s", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    access_token = create_access_token(user.id)
    refresh_token = create_refresh_token(user.id)
    _set_staff_cookies(response, access_token, refresh_token)

    add_audit(
        db, "login", actor_type="user", actor_id=user.id,
        target_type="user", target_id=user.id, ip_address=client_ip(request),
    )
    await db.commit()
    return Token(access_token=access_token, refresh_token=refresh_token)


@router.post("/refresh", response_model=Token)
async def refresh_access_token_endpoint(
    response: Response,
    body: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(None, alias="refresh_token"),
    db: AsyncSession = Depends(get_db),
) -> Token:
    # Priority: Body > Cookie
    token_str = body.refresh_token if body and body.refresh_token else refresh_token_cookie
    if not token_str:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token missing",
        )

    payload = decode_refresh_token(token_str)
    if payload is None or payload.get("sub") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    result = await db.execute(select(User).where(User.id == int(payload["sub"])))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    new_access = create_access_token(user.id)
    new_refresh = create_refresh_token(user.id)
    _set_staff_cookies(response, new_access, new_refresh)
    return Token(access_token=new_access, refresh_token=new_refresh)


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear auth cookies and end the session."""
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    response.delete_cookie("employee_token")
    return LogoutResponse(message="Logged out")


# ── Employee PIN login ──────────────────────────────────────────────
@router.post("/employee-login", response_model=EmployeeToken)
@limiter.limit(settings.PIN_LOGIN_RATE_LIMIT)
async def employee_login(
    request: Request,
    response: Response,
    body: EmployeeLoginRequest,
    db: AsyncSession = Depends(get_db),
) -> EmployeeToken:
    """Exchange a PIN for a short-lived employee token (mobile / portal)."""
    result = await db.execute(
        select(Employee).where(Employee.pin_lookup == pin_lookup_key(body.pin))
    )
    employee = result.scalar_one_or_none()
    if employee is None or not employee.pin_hash or not verify_password(body.pin, employee.pin_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid PIN")
    if not employee.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Employee account is deactivated")

    token = create_employee_token(employee.id)
    response.set_cookie(
        key="employee_token",
        value=f"Bearer {token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.EMPLOYEE_TOKEN_EXPIRE_MINUTES * 60,
    )
    add_audit(
        db, "login", actor_type="employee", actor_id=employee.id,
        target_type="employee", target_id=employee.id, ip_address=client_ip(request),
    )
    await db.commit()
    logger.info("Employee %d logged in with PIN", employee.id)
    return EmployeeToken(
        access_token=token,
        employee_id=employee.id,
        first_name=employee.first_name,
        last_name=employee.last_name,
        expires_in=settings.EMPLOYEE_TOKEN_EXPIRE_MINUTES * 60,
    )


# ── User management (admin-only) ───────────────────────────────────
@router.post("/users", response_model=UserRead, status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> User:
    """Create a new staff account (admin only)."""
    existing = await db.execute(select(User).where(User.email == body.email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=body.email,
        hashed_password=get_password_hash(body.password),
        full_name=body.full_name,
        role=body.role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Created %s account %s", user.role, user.email)
    return user


@router.get("/me", response_model=UserRead)
async def read_current_user(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Return profile of the currently authenticated user."""
    return current_user
