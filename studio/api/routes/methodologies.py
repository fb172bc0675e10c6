"""
Methodology Routes - The flywheel step definitions the front-end renders.
"""
from typing import Any, Dict, List

from fastapi import APIRouter

from studio.core.exceptions import NotFoundError
from studio.flywheel.methodology import get_methodology, get_methodology_summary, list_methodology_ids
from studio.models.common import ErrorResponse

router = APIRouter(
    prefix="/api/methodologies",
    tags=["Methodologies"],
    responses={404: {"model": ErrorResponse, "description": "Methodology not found"}},
)


@router.get("", summary="Registered methodologies")
async def list_methodologies() -> List[Dict[str, Any]]:
    return [get_methodology_summary(methodology_id) for methodology_id in list_methodology_ids()]


@router.get("/{methodology_id}", summary="Full methodology definition")
async def get_methodology_definition(methodology_id: str) -> Dict[str, Any]:
    methodology = get_methodology(methodology_id)
    if methodology is None:
        raise NotFoundError("Methodology not found")
    return methodology.to_dict()
