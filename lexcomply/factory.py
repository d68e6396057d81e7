"""
FastAPI application factory.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.database import init_db, close_db
from .core.exceptions import AIServiceError, UploadValidationError
from .core.redis import close_redis
from .api.router import router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="LexComply",
        description="Legal compliance API",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error mapping ────────────────────────────────────────────
    @app.exception_handler(UploadValidationError)
    async def on_upload_validation_error(request: Request, exc: UploadValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(AIServiceError)
    async def on_ai_service_error(request: Request, exc: AIServiceError):
        logger.error("AI service failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": "AI service failure"})

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting LexComply (env=%s)", settings.env)

        # Create database tables
        await init_db()

        # Start analysis workers
        from .services.ingestion import get_analysis_queue
        get_analysis_queue().start()

        # Log feature flag state
        from .core.flags import get_flags
        flags = get_flags()
        logger.info(
            "Flags: auth0=%s s3=%s redis=%s ocr=%s llm=%s",
            flags.use_auth0, flags.use_s3, flags.use_redis,
            flags.use_ocr, flags.llm_provider,
        )

        logger.info("LexComply is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        from .services.ingestion import close_analysis_queue
        from .services.llm import close_client
        await close_analysis_queue()
        await close_client()
        await close_db()
        await close_redis()
        logger.info("LexComply shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
