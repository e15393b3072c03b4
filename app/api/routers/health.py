from fastapi import APIRouter, Depends

from app.api.deps import get_settings
from app.core.config import Settings

router = APIRouter()


@router.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    return {
        "status": "ok",
        "crm_enabled": settings.crm_enabled,
        "convertkit_enabled": settings.convertkit_enabled,
    }


@router.get("/ping")
async def ping():
    return {"ok": True}
