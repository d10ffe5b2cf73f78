# app/main.py
# LearnHub video session service: scheduling, live lifecycle and attendance

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import time

from .config.settings import settings
from .config.database import (
    connect_to_mongo,
    close_mongo_connection,
    create_indexes,
    test_database_connection
)
from .routers import video_sessions
from .utils.exceptions import SessionServiceError, SessionConflictError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("🚀 Starting LearnHub Video Sessions API...")
    await connect_to_mongo()

    try:
        await create_indexes()
        logger.info("✅ Video session indexes ensured")
    except Exception as e:
        logger.error(f"❌ Failed to create indexes: {e}")
        logger.warning("⚠️ Continuing without index verification")

    logger.info("=" * 60)
    logger.info("✅ APPLICATION STARTUP COMPLETE")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("🛑 Shutting down LearnHub Video Sessions API...")
    await close_mongo_connection()
    logger.info("✅ Application shutdown complete")


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="LearnHub live video sessions - scheduling, recurrence, join/leave attendance and session analytics",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time to response headers"""
    start_time = time.time()
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response
    except Exception as e:
        logger.error(f"Request failed: {request.method} {request.url} - Error: {str(e)}", exc_info=True)
        raise

@app.exception_handler(SessionServiceError)
async def session_error_handler(request: Request, exc: SessionServiceError):
    """Render domain errors with their status code and a machine-readable error kind"""
    headers = None
    if isinstance(exc, SessionConflictError):
        headers = {"Retry-After": "1"}
        logger.warning(f"⚠️ {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers
    )

@app.get("/health")
async def health_check():
    database_ok = await test_database_connection()
    return {
        "status": "healthy" if database_ok else "degraded",
        "message": "LearnHub Video Sessions API is running",
        "version": settings.version,
        "database": "connected" if database_ok else "unavailable",
        "modules": ["video-sessions"]
    }

@app.get("/")
async def root():
    return {
        "message": "Welcome to LearnHub Video Sessions API",
        "version": settings.version,
        "docs": "/docs" if settings.debug else "Docs disabled in production",
        "endpoints": {
            "video-sessions": "/video-sessions",
            "health": "/health"
        }
    }

app.include_router(video_sessions.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info"
    )
