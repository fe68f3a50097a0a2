import json
import logging
import uuid

from pydantic import BaseModel, Field
from sqlmodel import Session

from planner import crud
from planner.core.config import settings
from planner.exceptions import ProviderError, UnsupportedProviderError
from planner.models import (
    DETAIL_TYPES,
    GameSystem,
    GameSystemUpdate,
    GameSystemWithDetails,
    SystemDetailCreate,
    SystemDetailPublic,
)
from planner.synthesis.artifacts import ErrorCode
from planner.synthesis.parser import parse_synthesis_response
from planner.synthesis.prompts.evolve import EVOLVE_SYSTEM_PROMPT
from planner.synthesis.providers import AIProvider, run_completion
from planner.synthesis.refine import MAX_HISTORY_PAIRS, clip_text

logger = logging.getLogger(__name__)

PURPOSE_MAX_LEN = 300
SPEC_SNIPPET_LEN = 200


class EvolveRequest(BaseModel):
    provider_id: str = "openai"
    model: str | None = None
    user_message: str = Field(min_length=1)


class EvolveResult(BaseModel):
    success: bool
    error: str | None = None
    code: ErrorCode | None = None
    system: GameSystemWithDetails | None = None
    raw_content: str | None = None


def build_evolve_prompt(system: GameSystem, history: list[tuple[str, str]], user_message: str) -> str:
    current = {
        "extractedSystems": [
            {
                "name": system.name,
                "systemSlug": system.system_slug,
                "purpose": clip_text(system.purpose, PURPOSE_MAX_LEN) or "",
                "version": system.version,
                "status": system.status,
                "mvpCriticality": system.mvp_criticality,
            }
        ],
        "extractedSystemDetails": [
            {"name": d.name, "detailType": d.detail_type, "spec": clip_text(d.spec, SPEC_SNIPPET_LEN)}
            for d in system.details
        ],
    }

    lines = [EVOLVE_SYSTEM_PROMPT, ""]
    recent = history[-MAX_HISTORY_PAIRS * 2:]
    if recent:
        lines.append("Previous conversation:")
        lines.extend(f"{'User' if role == 'user' else 'Assistant'}: {content}\n" for role, content in recent)
    lines += [
        "Current system (JSON):",
        json.dumps(current, indent=2),
        "",
        f"User request: {user_message}",
        "",
        "Respond with only the updated JSON object (extractedSystems with one system, extractedSystemDetails array). "
        f'Keep systemSlug as "{system.system_slug}".',
    ]
    return "\n".join(lines)


async def run_system_evolve(
    session: Session,
    system_id: uuid.UUID,
    request: EvolveRequest,
    *,
    provider: AIProvider | None = None,
) -> EvolveResult:
    """
    One evolve turn for a persisted system. The reply's single system updates
    the row (slug never changes) and its details replace the existing ones.
    """
    system = crud.get_game_system(session=session, system_id=system_id)
    if system is None:
        return EvolveResult(success=False, error="System not found", code="NOT_FOUND")

    history = [(m.role, m.content) for m in crud.list_evolve_messages(session, system_id)]
    prompt = build_evolve_prompt(system, history, request.user_message)

    try:
        completion = await run_completion(
            request.provider_id,
            prompt,
            model=request.model,
            max_tokens=settings.EVOLVE_MAX_TOKENS,
            provider=provider,
        )
    except UnsupportedProviderError as exc:
        return EvolveResult(success=False, error=exc.message, code="VALIDATION")
    except ProviderError as exc:
        logger.error("Evolve of system %s failed: %s", system_id, exc)
        return EvolveResult(success=False, error=exc.message, code="AI_ERROR")

    if not completion.content.strip():
        return EvolveResult(success=False, error="No response from AI", code="AI_ERROR")

    parsed = parse_synthesis_response(completion.content)
    if not parsed.extracted_systems:
        return EvolveResult(
            success=False,
            error="AI response did not contain a valid system object",
            code="AI_ERROR",
            raw_content=completion.content,
        )

    updated = parsed.extracted_systems[0]
    crud.update_system(
        session=session,
        db_system=system,
        system_in=GameSystemUpdate(
            name=updated.name,
            purpose=updated.purpose,
            version=updated.version,
            status=updated.status,
            mvp_criticality=updated.mvp_criticality,
        ),
        commit=False,
    )
    crud.delete_details_for_system(session=session, system_id=system_id, commit=False)
    crud.create_many_system_details(
        session=session,
        details_in=[
            SystemDetailCreate(
                game_system_id=system_id,
                name=detail.name or f"Detail {i + 1}",
                detail_type=detail.detail_type if detail.detail_type in DETAIL_TYPES else "mechanic",
                spec=detail.spec or "",
                sort_order=i,
            )
            for i, detail in enumerate(parsed.extracted_system_details)
        ],
        commit=False,
    )
    session.commit()

    crud.append_evolve_message(session=session, system_id=system_id, role="user", content=request.user_message)
    crud.append_evolve_message(session=session, system_id=system_id, role="assistant", content=completion.content)

    session.refresh(system)
    logger.info(
        "Evolved system %s (%s details)", system.system_slug, len(parsed.extracted_system_details)
    )
    return EvolveResult(
        success=True,
        system=GameSystemWithDetails.model_validate(
            system,
            update={
                "details": [
                    SystemDetailPublic.model_validate(detail)
                    for detail in crud.list_details_for_system(session, system_id)
                ]
            },
        ),
        raw_content=completion.content,
    )
