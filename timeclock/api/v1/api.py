"""
V1 API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from timeclock.api.v1.endpoints import (auth, employees, exports, overtime,
                                        punches, reports, settings)

api_router = APIRouter()

# Auth (staff login, employee PIN login, user management)
api_router.include_router(auth.router)

# Employees, live status, pairs
api_router.include_router(employees.router)

# Punching (mobile + kiosk), breaks, corrections, reviews, shifts
api_router.include_router(punches.router)

# Overtime requests
api_router.include_router(overtime.router)

# Reports, health, status
api_router.include_router(reports.router)

# Bulk punch export
api_router.include_router(exports.router)

# Attendance rules
api_router.include_router(settings.router)
