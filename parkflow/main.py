# parkflow/main.py
"""
FastAPI application entry point.
Includes security middleware, error handlers, all routers, and starts the
reservation expiry sweeper.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from parkflow.routers import reservations, occupancies, payments, tariffs, spaces, health
from parkflow.database import SessionLocal, create_tables
from parkflow.config import settings
from parkflow.errors import ParkingError
from parkflow.services.expiration_sweeper import run_expiration_sweeper
from parkflow.services.receipt_service import seed_receipt_series
from parkflow.utils.logger import get_logger
import time
import asyncio

logger = get_logger(__name__)

# Background sweeper started on startup, cancelled on shutdown
_sweeper_task = None

app = FastAPI(
    title="ParkFlow API",
    description="Parking lifecycle: reservations, check-in/out, tariffs and payment settlement.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (allow the web and mobile frontends to call the API) ───────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to frontend origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional shared-secret check between the gateway and this service.
    Set API_KEY in .env. Leave empty to disable auth.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Error Handlers ───────────────────────────────────────────────────────────
@app.exception_handler(ParkingError)
async def parking_error_handler(request: Request, exc: ParkingError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(reservations.router, prefix="/api/v1", tags=["📅 Reservations"])
app.include_router(occupancies.router,  prefix="/api/v1", tags=["🚗 Occupancies"])
app.include_router(payments.router,     prefix="/api/v1", tags=["💳 Payments"])
app.include_router(tariffs.router,      prefix="/api/v1", tags=["🏷️  Tariffs"])
app.include_router(spaces.router,       prefix="/api/v1", tags=["🅿️  Spaces"])
app.include_router(health.router,       prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    global _sweeper_task
    logger.info("🚀 ParkFlow backend starting up...")
    create_tables()
    db = SessionLocal()
    try:
        seed_receipt_series(db)
    finally:
        db.close()
    logger.info("✅ Database tables and receipt series ready")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_HOST}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")

    if settings.SWEEPER_ENABLED:
        _sweeper_task = asyncio.create_task(run_expiration_sweeper())
    else:
        logger.info("Reservation sweeper disabled (SWEEPER_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 ParkFlow backend shutting down...")
    global _sweeper_task
    if _sweeper_task is not None and not _sweeper_task.done():
        _sweeper_task.cancel()
        try:
            await _sweeper_task
        except asyncio.CancelledError:
            pass
        logger.info("Reservation sweeper stopped")
    _sweeper_task = None
