import json
import logging
import uuid

from pydantic import BaseModel, Field
from sqlmodel import Session

from planner import crud
from planner.core.config import settings
from planner.exceptions import ProviderError, UnsupportedProviderError
from planner.synthesis.artifacts import (
    ErrorCode,
    ExtractedSystem,
    ExtractedSystemDetail,
    dump_candidates,
)
from planner.synthesis.parser import parse_synthesis_response
from planner.synthesis.prompts.refine import REFINE_SYSTEM_PROMPT
from planner.synthesis.providers import AIProvider, run_completion

logger = logging.getLogger(__name__)

MAX_HISTORY_PAIRS = 6
PURPOSE_MAX_LEN = 200
SPEC_SNIPPET_LEN = 150
SNAPSHOT_SUMMARY_MAX_LEN = 800


class RefineRequest(BaseModel):
    provider_id: str = "openai"
    model: str | None = None
    user_message: str = Field(min_length=1)
    include_other_systems: bool = False
    include_snapshot: bool = False
    focused_system_slugs: list[str] = Field(default_factory=list)


class RefineResult(BaseModel):
    success: bool
    error: str | None = None
    code: ErrorCode | None = None
    extracted_systems: list[ExtractedSystem] = Field(default_factory=list)
    extracted_system_details: list[ExtractedSystemDetail] = Field(default_factory=list)
    raw_content: str | None = None


def clip_text(value: str | None, limit: int) -> str | None:
    if isinstance(value, str) and len(value) > limit:
        return value[:limit] + "..."
    return value


def compact_system(system: ExtractedSystem) -> dict:
    return {
        "name": system.name,
        "systemSlug": system.system_slug,
        "purpose": clip_text(system.purpose, PURPOSE_MAX_LEN),
        "version": system.version,
        "mvpCriticality": system.mvp_criticality,
        "dependencies": [
            dep if isinstance(dep, str) else dep.model_dump(exclude_none=True)
            for dep in system.dependencies or []
        ],
    }


def compact_detail(detail: ExtractedSystemDetail) -> dict:
    return {
        "name": detail.name,
        "detailType": detail.detail_type,
        "spec": clip_text(detail.spec, SPEC_SNIPPET_LEN),
        "targetSystemSlug": detail.target_system_slug or detail.system_slug,
    }


def build_refine_prompt(
    *,
    systems: list[ExtractedSystem],
    details: list[ExtractedSystemDetail],
    history: list[tuple[str, str]],
    user_message: str,
    other_systems: list[ExtractedSystem] | None = None,
    snapshot_summary: str | None = None,
    focused_system_slugs: list[str] | None = None,
) -> str:
    sections = [REFINE_SYSTEM_PROMPT, ""]

    recent = history[-MAX_HISTORY_PAIRS * 2:]
    if recent:
        sections.append("Previous conversation:")
        sections.extend(
            f"{'User' if role == 'user' else 'Assistant'}: {content}\n" for role, content in recent
        )

    if other_systems:
        sections += [
            "Other systems (for context):",
            json.dumps([compact_system(s) for s in other_systems], indent=2),
            "",
        ]
    if snapshot_summary is not None:
        sections += [snapshot_summary, ""]
    if focused_system_slugs:
        sections += [
            f"IMPORTANT: Refine ONLY these systems (by slug): {', '.join(focused_system_slugs)}. "
            "Keep every other system and detail unchanged and return the FULL extraction.",
            "",
        ]

    extraction = {
        "extractedSystems": [compact_system(s) for s in systems],
        "extractedSystemDetails": [compact_detail(d) for d in details],
    }
    sections += [
        "Current extraction (JSON):",
        json.dumps(extraction, indent=2),
        "",
        f"User request: {user_message}",
        "",
        "Respond with only the updated JSON object (extractedSystems and extractedSystemDetails).",
    ]
    return "\n".join(sections)


def _snapshot_summary(session: Session, project_id: uuid.UUID) -> str:
    snapshot = crud.get_latest_snapshot(session, project_id)
    if snapshot is None:
        return "No project context snapshot available."
    text = json.dumps(snapshot.content, sort_keys=True)
    if len(text) > SNAPSHOT_SUMMARY_MAX_LEN:
        text = text[:SNAPSHOT_SUMMARY_MAX_LEN] + "..."
    created = snapshot.created_at.isoformat() if snapshot.created_at else "unknown"
    return f"Project context snapshot ({created}):\n{text}"


async def run_refine(
    session: Session,
    output_id: uuid.UUID,
    request: RefineRequest,
    *,
    provider: AIProvider | None = None,
) -> RefineResult:
    """One refine turn: the model rewrites the stored extraction, which replaces it on success."""
    output = crud.get_synthesized_output(session=session, output_id=output_id)
    if output is None:
        return RefineResult(success=False, error="Synthesis output not found", code="NOT_FOUND")

    systems = [ExtractedSystem.model_validate(s) for s in output.extracted_systems or [] if isinstance(s, dict)]
    details = [
        ExtractedSystemDetail.model_validate(d)
        for d in output.extracted_system_details or []
        if isinstance(d, dict)
    ]
    history = [(m.role, m.content) for m in crud.list_synthesis_messages(session, output_id)]

    other_systems = None
    if request.include_other_systems:
        focused = set(request.focused_system_slugs)
        other_systems = [s for s in systems if (s.system_slug or s.name) not in focused]

    prompt = build_refine_prompt(
        systems=systems,
        details=details,
        history=history,
        user_message=request.user_message,
        other_systems=other_systems,
        snapshot_summary=_snapshot_summary(session, output.project_id) if request.include_snapshot else None,
        focused_system_slugs=request.focused_system_slugs,
    )

    try:
        completion = await run_completion(
            request.provider_id,
            prompt,
            model=request.model,
            max_tokens=settings.REFINE_MAX_TOKENS,
            provider=provider,
        )
    except UnsupportedProviderError as exc:
        return RefineResult(success=False, error=exc.message, code="VALIDATION")
    except ProviderError as exc:
        logger.error("Refine of output %s failed: %s", output_id, exc)
        return RefineResult(success=False, error=exc.message, code="AI_ERROR")

    if not completion.content.strip():
        return RefineResult(success=False, error="No response from AI", code="AI_ERROR")

    parsed = parse_synthesis_response(completion.content)
    if parsed.is_empty:
        logger.warning("Refine response for output %s held no candidates", output_id)
        return RefineResult(
            success=False,
            error="AI response did not contain valid extracted systems or system details",
            code="AI_ERROR",
            raw_content=completion.content,
        )

    crud.update_synthesized_output(
        session=session,
        db_output=output,
        update={
            "extracted_systems": dump_candidates(parsed.extracted_systems),
            "extracted_system_details": dump_candidates(parsed.extracted_system_details),
        },
    )
    crud.append_synthesis_message(session=session, output_id=output_id, role="user", content=request.user_message)
    crud.append_synthesis_message(
        session=session, output_id=output_id, role="assistant", content=completion.content
    )

    return RefineResult(
        success=True,
        extracted_systems=parsed.extracted_systems,
        extracted_system_details=parsed.extracted_system_details,
        raw_content=completion.content,
    )
