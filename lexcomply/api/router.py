"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter

from .audit import audit_router
from .chat import chat_router
from .compliance import compliance_router
from .contracts import contracts_router
from .documents import documents_router
from .files import files_router
from .stats import stats_router

router = APIRouter()


# ── Health (no auth) ─────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "lexcomply"}


# ── Auth config (no auth) ───────────────────────────────────────────

@router.get("/api/auth/config")
async def auth_config():
    from ..core.config import get_settings
    from ..core.flags import get_flags

    flags = get_flags()
    if not flags.use_auth0:
        return {"authEnabled": False, "message": "Dev mode, no auth required"}

    settings = get_settings()
    return {
        "authEnabled": True,
        "domain": settings.auth0_domain,
        "audience": settings.auth0_audience,
    }


# ── API routes (auth resolved per endpoint) ─────────────────────────

router.include_router(stats_router, prefix="/api")
router.include_router(documents_router, prefix="/api")
router.include_router(chat_router, prefix="/api")
router.include_router(compliance_router, prefix="/api")
router.include_router(contracts_router, prefix="/api")
router.include_router(audit_router, prefix="/api")
router.include_router(files_router)
