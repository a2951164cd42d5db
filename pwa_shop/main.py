"""
PWA Shop 알림 서버

서비스 워커와 NotificationService가 호출하는 /api/notifications 백엔드입니다.

    uvicorn pwa_shop.main:app
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pwa_shop.api.notifications import router as notifications_router
from pwa_shop.config import Settings, get_settings
from pwa_shop.models.base import close_db, init_db
from pwa_shop.utils.exceptions import AppException
from pwa_shop.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.warning(
        f"[WARN] {request.method} {request.url.path} -> {exc.status_code} {exc.error_code}",
        extra={"error_code": exc.error_code, "path": request.url.path},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.message, "details": exc.details},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"[FAIL] Unhandled exception on {request.method} {request.url.path}: {exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "서버 내부 오류가 발생했습니다. 잠시 후 다시 시도해주세요.",
        },
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, settings.LOG_FILE)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.is_development:
            await init_db()
        if not settings.VAPID_PRIVATE_KEY:
            logger.warning("[WARN] VAPID_PRIVATE_KEY is not set, push delivery will fail")
        logger.info(f"[OK] Notification server started (v{settings.APP_VERSION})")
        yield
        await close_db()
        logger.info("[OK] Notification server stopped")

    app = FastAPI(
        title="PWA Shop - Notifications API",
        description="푸시 구독 미러, 알림 전송/브로드캐스트, 알림 이력",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {
            "status": "healthy",
            "version": settings.APP_VERSION,
            "push_configured": bool(settings.VAPID_PRIVATE_KEY),
        }

    app.include_router(notifications_router)
    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "pwa_shop.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
    )
