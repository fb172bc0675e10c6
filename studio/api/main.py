"""
ASGI entry point for the Solution Studio API.

Builds the app, hangs the middleware stack and the StudioException to
JSON translation on it, and mounts one router per resource.

Run with: uvicorn studio.api.main:app --reload
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studio import __version__
from studio.api.routes import (
    admin_router,
    auth_router,
    case_studies_router,
    clusters_router,
    coach_router,
    credentials_router,
    cycles_router,
    events_router,
    flywheel_router,
    health_router,
    institutions_router,
    methodologies_router,
    pipeline_router,
    problems_router,
)
from studio.core.audit import AuditMiddleware, SecurityHeadersMiddleware
from studio.core.config import get_settings
from studio.core.exceptions import RateLimitExceeded, StudioException
from studio.core.logging_config import get_logger, setup_logging
from studio.database.connection import get_database
from studio.database.init_db import init_tables

# Logging first so module-level loggers below inherit the handlers
settings = get_settings()
setup_logging(settings.log_level, to_file=not settings.is_test())
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables on startup, dispose of the pool on shutdown."""
    logger.info(
        f"Starting {settings.app_name} ({settings.app_env}): "
        f"model={settings.gemini_default_model} "
        f"coach_limit={settings.rate_limit_per_minute}/min "
        f"audit={'on' if settings.enable_audit_logging else 'off'}"
    )
    init_tables()

    yield

    logger.info(f"Shutting down {settings.app_name}")
    get_database().close()


app = FastAPI(
    title="JKKN Solution Studio API",
    description="""
    Guides learners through the 8-step Problem-to-Impact Flywheel.

    ## Features

    - **Cycles**: Step-by-step problem discovery through impact measurement
    - **Events**: Appathons with their own methodology and admins
    - **Problem Bank**: Validated problems, attempts, outcomes and clustering
    - **Admin Back-office**: User management, cycle review, impersonation
    - **AI Coach**: Gemini on the learner's own subscription (BYOS)
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ============================================================
# Middleware Configuration (Order matters!)
# ============================================================

app.add_middleware(SecurityHeadersMiddleware)

if settings.enable_audit_logging:
    app.add_middleware(AuditMiddleware)
    logger.info("Audit logging middleware enabled")

if settings.is_development():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.warning(f"CORS configured for development ({settings.app_url})")


# ============================================================
# Exception Handlers
# ============================================================

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limited: {request.method} {request.url.path}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"Retry-After": str(exc.retry_after)}
    )


@app.exception_handler(StudioException)
async def studio_exception_handler(request: Request, exc: StudioException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query strings are a 400, not FastAPI's 422."""
    details = [
        {"field": ".".join(str(part) for part in error.get("loc", ())), "message": error.get("msg")}
        for error in exc.errors()
    ]
    logger.warning(f"Invalid request body for {request.url.path}: {details}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": details}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Anything unexpected is a 500; the message is exposed only in development."""
    logger.exception(f"Unhandled exception: {exc}")

    content = {"error": "Internal server error"}
    if settings.is_development():
        content["details"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# ============================================================
# Routers
# ============================================================

ROUTERS = (
    health_router,
    auth_router,
    admin_router,
    institutions_router,
    events_router,
    methodologies_router,
    cycles_router,
    problems_router,
    clusters_router,
    case_studies_router,
    pipeline_router,
    flywheel_router,
    credentials_router,
    coach_router,
)

for router in ROUTERS:
    app.include_router(router)


# ============================================================
# Root Endpoint
# ============================================================

@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": "JKKN Solution Studio API",
        "version": __version__,
        "documentation": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "studio.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development()
    )
