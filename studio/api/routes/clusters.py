"""
Cluster Routes - Groups of related problems.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from studio.api.deps import get_current_user, require_superadmin
from studio.models.common import ErrorResponse
from studio.models.problems import ClusterCreate
from studio.services.auth_service import CurrentUser
from studio.services.similarity_service import get_similarity_service

router = APIRouter(
    prefix="/api/clusters",
    tags=["Clusters"],
    responses={401: {"model": ErrorResponse, "description": "Not signed in"}},
)


@router.get("", summary="Active problem clusters")
async def list_clusters(
    theme: Optional[str] = None,
    include_problems: bool = False,
    user: CurrentUser = Depends(get_current_user)
) -> Dict[str, Any]:
    return get_similarity_service().list_clusters(theme=theme, include_problems=include_problems)


@router.post("", status_code=201, summary="Create a cluster by hand")
async def create_cluster(
    body: ClusterCreate,
    admin: CurrentUser = Depends(require_superadmin("Admin access required"))
) -> Dict[str, Any]:
    cluster = get_similarity_service().create_cluster(
        admin,
        body.name,
        description=body.description,
        primary_theme=body.primary_theme,
        problem_ids=body.problem_ids,
    )
    return {"success": True, "cluster_id": cluster["id"], "cluster": cluster}
