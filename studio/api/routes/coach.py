"""
Coach Routes - Gemini-backed endpoints.

Both endpoints spend the signed-in user's own Gemini quota and are rate
limited per signed-in user. While impersonating, an admin still pays with
their own credentials; the learner only supplies the cycle. Check the
X-RateLimit-Remaining header for remaining requests.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Response

from studio.api.deps import get_current_user, get_effective_user
from studio.core.exceptions import RateLimitExceeded
from studio.core.logging_config import get_logger
from studio.core.rate_limiter import get_rate_limiter
from studio.core.validators import sanitize_message
from studio.models.byos import CoachRequest, GeneratePromptsRequest
from studio.models.common import ErrorResponse
from studio.services.auth_service import CurrentUser
from studio.services.coach_service import get_coach_service

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["Coach"],
    responses={
        400: {"model": ErrorResponse, "description": "No Gemini account connected"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Gemini call failed"},
    },
)


def _apply_rate_limit(user: CurrentUser, response: Response) -> None:
    rate_limiter = get_rate_limiter()
    is_allowed, remaining = rate_limiter.is_allowed(user.id)

    response.headers["X-RateLimit-Limit"] = str(rate_limiter.limit)
    response.headers["X-RateLimit-Remaining"] = str(remaining)

    if not is_allowed:
        raise RateLimitExceeded(retry_after=rate_limiter.retry_after(user.id))


@router.post("/coach", summary="Ask the AI coach")
async def coach(
    body: CoachRequest,
    response: Response,
    user: CurrentUser = Depends(get_effective_user),
    account: CurrentUser = Depends(get_current_user)
) -> Dict[str, str]:
    _apply_rate_limit(account, response)

    messages: List[Dict[str, str]] = [
        {"role": m.role, "content": sanitize_message(m.content)} for m in body.messages
    ]
    logger.info(f"Coach request: user={user.id[:8]}... step={body.current_step} messages={len(messages)}")

    return get_coach_service().chat(
        user,
        messages,
        cycle_id=body.cycle_id,
        cycle=body.cycle,
        current_step=body.current_step,
        account=account,
    )


@router.post("/generate-prompts", summary="Generate nine Lovable prompts")
async def generate_prompts(
    body: GeneratePromptsRequest,
    response: Response,
    user: CurrentUser = Depends(get_effective_user),
    account: CurrentUser = Depends(get_current_user)
) -> Dict[str, Any]:
    _apply_rate_limit(account, response)

    data = body.model_dump(exclude={"value_assessment"})
    if body.value_assessment is not None:
        data["value_assessment"] = body.value_assessment.model_dump(by_alias=True)

    return get_coach_service().generate_prompts(user, data, account=account)
