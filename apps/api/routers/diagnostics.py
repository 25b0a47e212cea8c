"""
Provider setup diagnostics. Disabled unless ENABLE_DIAGNOSTIC_ENDPOINTS is set.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from services import diagnostics


async def require_diagnostics_enabled() -> None:
    if not settings.ENABLE_DIAGNOSTIC_ENDPOINTS:
        raise HTTPException(status_code=404, detail="Not Found")


router = APIRouter(dependencies=[Depends(require_diagnostics_enabled)])


@router.get("/tiktok/validate-app")
async def validate_tiktok_app():
    """Credential checks plus a token endpoint probe with a dummy code."""
    return await diagnostics.tiktok_validate_app()


@router.get("/tiktok-app-status")
async def tiktok_app_status():
    return diagnostics.tiktok_app_status()


@router.get("/tiktok-debug-live")
async def tiktok_debug_live():
    return await diagnostics.tiktok_debug_live()


@router.get("/test-tiktok-env")
async def test_tiktok_env():
    return await diagnostics.tiktok_env_test()


@router.get("/debug-env")
async def debug_env():
    return diagnostics.debug_env()


@router.get("/check-db-schema")
async def check_db_schema(db: AsyncSession = Depends(get_db)):
    return await diagnostics.check_db_schema(db)
