"""
Coach Service - Gemini-backed help for learners.

Two features share this service:
1. The AI coach, a chat grounded in the learner's current cycle
2. Prompt generation, nine Lovable build prompts tailored to the problem

Both run on the caller's own Gemini credentials (see CredentialService);
there is no server-wide fallback key.
"""
import json
import re
from typing import Any, Dict, List, Optional

from studio.core.exceptions import LLMError, StudioException, ValidationError
from studio.core.logging_config import LoggerMixin
from studio.database.connection import get_database
from studio.database.models import Conversation, Cycle, Message
from studio.flywheel.templates import get_workflow_template
from studio.llm.client import GeminiProvider
from studio.llm.prompts.coach import (
    COACH_FALLBACK_MESSAGE,
    COACH_MAX_TOKENS,
    build_coach_context,
    get_coach_system_prompt,
)
from studio.llm.prompts.generation import (
    GENERATION_CONFIG,
    build_validation_context,
    get_generation_system_prompt,
    get_generation_user_prompt,
)
from studio.services.auth_service import CurrentUser
from studio.services.credential_service import get_credential_service
from studio.services.cycle_service import serialize_cycle

JSON_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")


def parse_prompt_list(text: str) -> List[Dict[str, Any]]:
    """
    Read the prompt array out of a Gemini reply.

    The reply should be pure JSON; if it is wrapped in prose or a code
    fence, the first `[...]` block is used instead.

    Raises:
        ValueError: When no JSON array can be recovered
    """
    try:
        parsed = json.loads(text)
    except ValueError:
        match = JSON_ARRAY_PATTERN.search(text or "")
        if match is None:
            raise ValueError("no JSON array in response")
        parsed = json.loads(match.group(0))

    if isinstance(parsed, dict) and isinstance(parsed.get("prompts"), list):
        parsed = parsed["prompts"]
    if not isinstance(parsed, list):
        raise ValueError("response is not a JSON array")
    return parsed


class CoachService(LoggerMixin):
    """
    Coach chat and Lovable prompt generation.

    Example:
        >>> service = CoachService()
        >>> reply = service.chat(user, [{"role": "user", "content": "Where do I start?"}], current_step=1)
        >>> reply["message"]
    """

    def _provider(self, user: CurrentUser, feature: str) -> GeminiProvider:
        provider = get_credential_service().get_provider_for_user(user.id)
        if provider is None:
            raise ValidationError(f"Connect your Gemini account in Settings to use {feature}")
        return provider

    def _load_cycle(self, session, user: CurrentUser, cycle_id: str) -> Optional[Cycle]:
        cycle = session.get(Cycle, cycle_id)
        if cycle is None or cycle.user_id != user.id:
            return None
        return cycle

    def chat(
        self,
        user: CurrentUser,
        messages: List[Dict[str, str]],
        cycle_id: Optional[str] = None,
        cycle: Optional[Dict[str, Any]] = None,
        current_step: int = 1,
        account: Optional[CurrentUser] = None
    ) -> Dict[str, str]:
        """
        Answer the last message in `messages`.

        Cycle data comes from the database when `cycle_id` names one of
        the user's cycles, otherwise from the snapshot the client sent.
        Gemini runs on `account` (the signed-in user) when given, so an
        impersonating admin never spends the learner's subscription.

        Raises:
            ValidationError: No messages, or no Gemini credentials
            StudioException: Gemini call failed (500)
        """
        if not messages:
            raise ValidationError("Messages are required", field="messages")
        provider = self._provider(account or user, "the AI coach")

        cycle_data = cycle or {}
        if cycle_id:
            with get_database().get_session() as session:
                row = self._load_cycle(session, user, cycle_id)
                if row is not None:
                    cycle_data = serialize_cycle(row)
                else:
                    cycle_id = None

        system_prompt = get_coach_system_prompt(build_coach_context(cycle_data, current_step))
        question = messages[-1]["content"]

        try:
            response = provider.query(
                question,
                system_prompt=system_prompt,
                history=messages[:-1],
                max_tokens=COACH_MAX_TOKENS,
                temperature=0.7,
            )
        except LLMError as e:
            self.logger.error(f"Coach call failed for user {user.id}: {e.message}")
            raise StudioException("Failed to generate response", details=e.details) from e

        reply = response.content or COACH_FALLBACK_MESSAGE

        if cycle_id:
            self._save_exchange(user, cycle_id, current_step, question, reply)
        return {"message": reply}

    def _save_exchange(self, user: CurrentUser, cycle_id: str, step: int, question: str, reply: str) -> None:
        with get_database().get_session() as session:
            conversation = (
                session.query(Conversation)
                .filter(Conversation.cycle_id == cycle_id, Conversation.step == step)
                .order_by(Conversation.started_at.desc())
                .first()
            )
            if conversation is None:
                conversation = Conversation(cycle_id=cycle_id, user_id=user.id, step=step)
                session.add(conversation)
                session.flush()
            session.add(Message(conversation_id=conversation.id, role="user", content=question))
            session.add(Message(conversation_id=conversation.id, role="assistant", content=reply))

    def generate_prompts(
        self,
        user: CurrentUser,
        data: Dict[str, Any],
        account: Optional[CurrentUser] = None
    ) -> Dict[str, List[Dict[str, Any]]]:
        """
        Ask Gemini for nine Lovable prompts.

        `data` uses snake_case keys; `value_assessment` keeps the
        camelCase keys the evidence builder reads.
        """
        provider = self._provider(account or user, "AI features")

        workflow_type = (data.get("workflow_type") or "MONITORING").upper()
        template = get_workflow_template(workflow_type)
        user_prompt = get_generation_user_prompt(
            template,
            workflow_type=workflow_type,
            problem_statement=data.get("problem_statement") or "",
            primary_users=data.get("primary_users") or "users",
            when=data.get("when") or "when needed",
            current_solution=data.get("current_solution") or "manual process",
            pain_level=data.get("pain_level") or 7,
            frequency=data.get("frequency") or "daily",
            validation_context=build_validation_context(data.get("value_assessment")),
            custom_workflow_description=data.get("custom_workflow_description"),
        )

        try:
            response = provider.query(
                user_prompt,
                system_prompt=get_generation_system_prompt(),
                **GENERATION_CONFIG,
            )
        except LLMError as e:
            self.logger.error(f"Prompt generation failed for user {user.id}: {e.message}")
            raise StudioException("Failed to generate prompts", details=e.details) from e

        try:
            prompts = parse_prompt_list(response.content)
        except ValueError as e:
            self.logger.error(f"Unparseable prompt generation reply: {response.content[:200]!r}")
            raise StudioException("Failed to parse Gemini response as JSON") from e

        self.logger.info(f"Generated {len(prompts)} prompts for user {user.id} ({workflow_type})")
        return {"prompts": prompts}


# Global service instance
_coach_service: Optional[CoachService] = None


def get_coach_service() -> CoachService:
    """Get or create the global coach service."""
    global _coach_service
    if _coach_service is None:
        _coach_service = CoachService()
    return _coach_service
