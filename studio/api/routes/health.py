"""
Liveness and readiness probes.

`/health` only proves the process answers; `/health/ready` also pings
the database so a deploy is not routed traffic before its pool works.
"""
from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from studio import __version__
from studio.core.logging_config import get_logger
from studio.database.connection import get_database
from studio.models.common import ErrorResponse, HealthResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


def _status(state: str) -> HealthResponse:
    return HealthResponse(status=state, version=__version__, timestamp=datetime.utcnow())


@router.get(
    "",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Always 200 while the process is up. Does not touch the database.",
)
async def health_check() -> HealthResponse:
    return _status("healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": ErrorResponse, "description": "Database unavailable"}},
    summary="Readiness probe",
)
async def readiness_check():
    """200 once `SELECT 1` succeeds, 503 otherwise."""
    if get_database().check_connection():
        return _status("ready")

    logger.warning("Readiness probe failed: database did not answer")
    return JSONResponse(
        status_code=503,
        content={"error": "Database unavailable", "code": "database_error"},
    )
