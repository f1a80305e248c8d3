import asyncio
import logging
import sys
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from storefront.config import get_settings
from storefront.database import SessionLocal, init_db
from storefront.errors import AppError, PaymentError
from storefront.payments.notifier import PaymentStatusNotifier
from storefront.payments.registry import build_provider_registry
from storefront.payments.sessions import PaymentSessionStore
from storefront.rate_limit import limiter, rate_limit_exceeded_handler
from storefront.routers import admin, memberships, nets, orders, refunds, shipments, vouchers
from storefront.scheduler.maintenance import run_maintenance_loop

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)

# Keep SQL and outbound HTTP noise out of the application log
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)
settings = get_settings()
_maintenance_stop_event: Optional[asyncio.Event] = None
_maintenance_task: Optional[asyncio.Task] = None

# Disable docs and OpenAPI schema in production
_is_prod = settings.ENVIRONMENT == "production"

app = FastAPI(
    title="Storefront Payments API",
    version="1.0.0",
    docs_url=None if _is_prod else "/docs",
    redoc_url=None if _is_prod else "/redoc",
    openapi_url=None if _is_prod else "/openapi.json",
)

# Payment collaborators: one session store per process, shared by the NETS adapter
app.state.payment_sessions = PaymentSessionStore(ttl_seconds=settings.NETS_SESSION_TTL_MINUTES * 60)
app.state.providers = build_provider_registry(settings, app.state.payment_sessions)
app.state.notifier = PaymentStatusNotifier(
    SessionLocal,
    app.state.providers,
    timeout_seconds=settings.PAYMENT_STREAM_TIMEOUT_SECONDS,
    interval_seconds=settings.PAYMENT_STREAM_INTERVAL_SECONDS,
)


@app.on_event("startup")
async def startup_event():
    """Create tables and start the maintenance loop"""
    logger.info("Initializing Storefront Payments API...")
    try:
        init_db()
        global _maintenance_task
        global _maintenance_stop_event
        if _maintenance_stop_event is None:
            _maintenance_stop_event = asyncio.Event()
        if _maintenance_task is None or _maintenance_task.done():
            _maintenance_stop_event.clear()
            _maintenance_task = asyncio.create_task(
                run_maintenance_loop(_maintenance_stop_event, app.state.payment_sessions)
            )
    except Exception as e:
        logger.error(f"Startup error during DB init: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Gracefully stop background maintenance tasks."""
    if _maintenance_stop_event is not None:
        _maintenance_stop_event.set()
    if _maintenance_task and not _maintenance_task.done():
        try:
            await asyncio.wait_for(_maintenance_task, timeout=5)
        except asyncio.TimeoutError:
            _maintenance_task.cancel()


# Register rate limiter with app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    """Payment taxonomy errors render as {"ok": false, "error": message}."""
    logger.warning(
        f"{exc.name}: status={exc.status} path={request.url.path} message={exc.message}"
    )
    return JSONResponse(status_code=exc.status, content=exc.to_payload())


# Global AppError handler
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Global error handler for AppError exceptions.
    Provides consistent error response format.
    """
    is_production = settings.ENVIRONMENT == "production"

    # Log error with details (internal only)
    logger.error(
        f"AppError: code={exc.code} status={exc.status} "
        f"request_id={exc.request_id} details={exc.details}"
    )

    return JSONResponse(
        status_code=exc.status,
        content=exc.to_dict(is_production=is_production),
    )


# Field names whose submitted values must never be echoed in 422 responses
_SENSITIVE_FIELDS = frozenset({"password", "token", "secret", "authorization", "access_token", "key"})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """
    Sanitize Pydantic 422 validation errors: drop ``input`` for sensitive or
    body-level locations and stringify non-serializable ``ctx`` values.
    """
    safe_details = []
    for err in exc.errors():
        sanitized = {k: v for k, v in err.items() if k not in ("input", "ctx", "url")}
        if isinstance(err.get("ctx"), dict):
            sanitized["ctx"] = {
                ck: cv if isinstance(cv, (str, int, float, bool, type(None))) else str(cv)
                for ck, cv in err["ctx"].items()
            }

        field_names = {str(loc).lower() for loc in err.get("loc", [])}
        if not (field_names & _SENSITIVE_FIELDS) and "body" not in field_names:
            inp = err.get("input")
            if isinstance(inp, (str, int, float, bool, type(None))):
                sanitized["input"] = inp

        safe_details.append(sanitized)

    request_id = str(uuid4())
    logger.warning(
        f"ValidationError: request_id={request_id} path={request.url.path} "
        f"errors={len(safe_details)}"
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "The request is invalid.",
                "requestId": request_id,
                "details": safe_details,
            },
        },
    )


# Catch-all for unhandled exceptions (prevent stack trace leaks in production)
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = str(uuid4())
    logger.error(
        f"UnhandledException: request_id={request_id} path={request.url.path} "
        f"error={type(exc).__name__}: {exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "Internal server error.",
                "requestId": request_id,
            },
        },
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all API requests and responses"""

    async def dispatch(self, request: Request, call_next) -> Response:
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f">>> {request.method} {request.url.path} | IP: {client_ip}")

        try:
            response = await call_next(request)
            logger.info(
                f"<<< {request.method} {request.url.path} | Status: {response.status_code}"
            )
            return response
        except Exception as e:
            logger.error(f"!!! {request.method} {request.url.path} | Error: {str(e)}")
            raise


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"
        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=63072000; includeSubDomains; preload"
            )
        if "server" in response.headers:
            del response.headers["server"]
        return response


# Security headers middleware (added first, executed last)
app.add_middleware(SecurityHeadersMiddleware)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

if settings.ENVIRONMENT == "production" and "*" in settings.ALLOWED_ORIGINS:
    logger.warning("CORS: Production wildcard overridden to empty")
    _cors_origins: list = []
else:
    _cors_origins = settings.ALLOWED_ORIGINS

allow_credentials = "*" not in _cors_origins and len(_cors_origins) > 0

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)


@app.get("/")
async def root():
    return {"status": "ok", "service": "Storefront Payments API"}


# Include routers
app.include_router(orders.router)
app.include_router(memberships.router)
app.include_router(nets.router)
app.include_router(vouchers.router)
app.include_router(refunds.router)
app.include_router(shipments.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "paymentSessions": len(app.state.payment_sessions),
    }
