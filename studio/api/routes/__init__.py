"""
API Routes module - Endpoint definitions.

Each file in this module defines routes for a specific domain:
- auth.py          : Sign-in, sign-out, current user, Gemini consent flow
- admin.py         : Users, activity log, cycle review, impersonation
- institutions.py  : Institutions, membership and change requests
- events.py        : Events and event admins
- methodologies.py : Flywheel step definitions
- cycles.py        : Learner cycles and step data
- problems.py      : The problem bank and its learning loop
- clusters.py      : Problem clusters
- case_studies.py  : Case studies
- pipeline.py      : Incubation pipeline
- flywheel.py      : Flywheel metrics
- credentials.py   : BYOS provider credentials
- coach.py         : AI coach and prompt generation
- health.py        : Health check endpoints
"""
from studio.api.routes.admin import router as admin_router
from studio.api.routes.auth import router as auth_router
from studio.api.routes.case_studies import router as case_studies_router
from studio.api.routes.clusters import router as clusters_router
from studio.api.routes.coach import router as coach_router
from studio.api.routes.credentials import router as credentials_router
from studio.api.routes.cycles import router as cycles_router
from studio.api.routes.events import router as events_router
from studio.api.routes.flywheel import router as flywheel_router
from studio.api.routes.health import router as health_router
from studio.api.routes.institutions import router as institutions_router
from studio.api.routes.methodologies import router as methodologies_router
from studio.api.routes.pipeline import router as pipeline_router
from studio.api.routes.problems import router as problems_router

__all__ = [
    "admin_router",
    "auth_router",
    "case_studies_router",
    "clusters_router",
    "coach_router",
    "credentials_router",
    "cycles_router",
    "events_router",
    "flywheel_router",
    "health_router",
    "institutions_router",
    "methodologies_router",
    "pipeline_router",
    "problems_router",
]
