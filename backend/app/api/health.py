from fastapi import APIRouter

from app.core.config import get_settings
from app.services.pwp_curriculum import supported_lessons

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    settings = get_settings()
    return {
        "status": "ok",
        "session_store": settings.pwp_session_store,
        "llm_provider": settings.llm_provider,
        "lessons": supported_lessons(),
    }
