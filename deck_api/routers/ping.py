from fastapi import APIRouter

from deck_api.dependencies import SettingsDep

router = APIRouter(tags=["health"])


@router.get("/ping")
async def ping(settings: SettingsDep):
    """Liveness check."""
    return {"status": "ok", "version": settings.app_version}
