# backend/app/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from ulid import ULID
import time

from app.core.config import settings
from app.core.exceptions import HarborError
from app.core.logging import logger
from app.db.database import init_db, close_db
from app.api.v1.router import api_router
from app.api.v1 import setup


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting HarborCI API")
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down HarborCI API")
    await close_db()


app = FastAPI(
    title="HarborCI API",
    version=settings.VERSION,
    docs_url=("/api/docs" if settings.ENVIRONMENT == "development" else None),
    redoc_url=None,
    lifespan=lifespan,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request id + timing middleware
@app.middleware("http")
async def add_request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(ULID())
    request.state.request_id = request_id
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    response.headers["X-Request-ID"] = request_id
    return response


# Include routers
app.include_router(api_router, prefix="/api")
app.include_router(setup.router, prefix="/setup", tags=["setup"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.exception_handler(HarborError)
async def harbor_exception_handler(request: Request, exc: HarborError):
    """Typed service errors"""
    extra = {"request_id": getattr(request.state, "request_id", None)}
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}", extra=extra)
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}", extra=extra)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.exception("Unhandled exception while handling request", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "Internal server error", "retryable": False}},
    )
