"""
Flywheel Routes - How the whole problem-to-impact loop is performing.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from studio.api.deps import require_superadmin
from studio.core.logging_config import get_logger
from studio.models.common import ErrorResponse
from studio.services.auth_service import CurrentUser
from studio.services.learning_service import get_learning_service

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/flywheel",
    tags=["Flywheel"],
    responses={403: {"model": ErrorResponse, "description": "Superadmin only"}},
)

superadmin_only = require_superadmin("Forbidden - superadmin only")


@router.get("/summary", summary="Flywheel metrics")
async def flywheel_summary(admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, Any]:
    return get_learning_service().flywheel_summary()


@router.post("/summary", summary="Recompute flywheel metrics")
async def recompute_flywheel_summary(admin: CurrentUser = Depends(superadmin_only)) -> Dict[str, Any]:
    summary = get_learning_service().flywheel_summary()
    logger.info(f"Flywheel metrics recomputed by {admin.email}")
    return {"message": "Flywheel metrics computed successfully", "summary": summary}
