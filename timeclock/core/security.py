"""
JWT token creation / verification and password / PIN hashing (bcrypt).

Three token kinds share one secret and are told apart by their ``type``
claim: ``access`` and ``refresh`` for staff users, ``employee`` for the
short-lived PIN sessions used by the mobile and portal endpoints.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from timeclock.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_ALGORITHM = settings.ALGORITHM
_SECRET = settings.SECRET_KEY


# ── Passwords & PINs ────────────────────────────────────────────────
def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(plain: str) -> str:
    return pwd_context.hash(plain)


def pin_lookup_key(pin: str) -> str:
    """Deterministic digest of a PIN, used to locate the employee row.

    The bcrypt hash is still verified afterwards; this only avoids checking
    every employee's hash on each kiosk punch.
    """
    return hashlib.sha256(f"{_SECRET}:{pin}".encode("utf-8")).hexdigest()


def signature_digest(signature_data: str) -> str:
    return hashlib.sha256(signature_data.encode("utf-8")).hexdigest()


# ── JWT tokens ──────────────────────────────────────────────────────
def _encode(subject: str | Any, token_type: str, expire: datetime) -> str:
    return jwt.encode(
        {"exp": expire, "sub": str(subject), "type": token_type},
        _SECRET,
        algorithm=_ALGORITHM,
    )


def _decode(token: str, token_type: str) -> dict | None:
    try:
        payload = jwt.decode(token, _SECRET, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload


def create_access_token(
    subject: str | Any,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return _encode(subject, "access", expire)


def create_refresh_token(subject: str | Any) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode(subject, "refresh", expire)


def create_employee_token(employee_id: int) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.EMPLOYEE_TOKEN_EXPIRE_MINUTES)
    return _encode(employee_id, "employee", expire)


def decode_access_token(token: str) -> dict | None:
    """Return payload dict if *access* token is valid, else ``None``."""
    return _decode(token, "access")


def decode_refresh_token(token: str) -> dict | None:
    """Return payload dict if *refresh* token is valid, else ``None``."""
    return _decode(token, "refresh")


def decode_employee_token(token: str) -> dict | None:
    return _decode(token, "employee")
