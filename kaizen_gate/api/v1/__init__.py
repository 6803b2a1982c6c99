from fastapi import APIRouter

from kaizen_gate.api.v1 import internal, license as license_routes, reports

api_router = APIRouter()
api_router.include_router(license_routes.router, tags=["license"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
api_router.include_router(internal.router, prefix="/internal/auth", tags=["internal"])
