import logging
import uuid

from pydantic import BaseModel, Field
from sqlmodel import Session

from planner import crud
from planner.core.config import settings
from planner.exceptions import ProviderError, UnsupportedProviderError
from planner.synthesis.artifacts import DependencyEdgeIn, ErrorCode, ExtractedSystem
from planner.synthesis.parser import extract_json_object
from planner.synthesis.prompts.convert_suggest import CONVERT_SUGGEST_SYSTEM_PROMPT
from planner.synthesis.providers import AIProvider, run_completion

logger = logging.getLogger(__name__)

PURPOSE_PREVIEW_LEN = 80


class ConvertSuggestRequest(BaseModel):
    provider_id: str = "openai"
    model: str | None = None


class MergeSuggestion(BaseModel):
    candidate_index: int
    into_existing_slug: str
    existing_system_id: uuid.UUID


class ExistingSystemRef(BaseModel):
    id: uuid.UUID
    system_slug: str


class ConvertSuggestion(BaseModel):
    create: list[int] = Field(default_factory=list)
    merge: list[MergeSuggestion] = Field(default_factory=list)
    discard: list[int] = Field(default_factory=list)
    dependencies: list[DependencyEdgeIn] = Field(default_factory=list)
    rationale: str | None = None


class ConvertSuggestResult(BaseModel):
    success: bool
    error: str | None = None
    code: ErrorCode | None = None
    suggestion: ConvertSuggestion | None = None
    existing_systems: list[ExistingSystemRef] = Field(default_factory=list)
    user_prompt: str | None = None


def build_user_prompt(candidates: list[ExtractedSystem], existing: list[ExistingSystemRef], names: dict[str, str]) -> str:
    candidate_lines = [
        f"{i}: {c.name or 'Unnamed'} (slug: {c.system_slug or 'none'}) - {(c.purpose or '')[:PURPOSE_PREVIEW_LEN]}"
        for i, c in enumerate(candidates)
    ]
    existing_lines = [f"- {ref.system_slug}: {names.get(ref.system_slug, '')}" for ref in existing]
    return "\n".join(
        [
            "Candidates (index, name, slug, purpose):",
            "\n".join(candidate_lines) or "(none)",
            "",
            "Existing project systems (slug: name):",
            "\n".join(existing_lines) or "(none)",
            "",
            "Suggest create/merge/discard and optional dependencies, with an optional short rationale. "
            "Respond with only the JSON object.",
        ]
    )


def _as_index(value, count: int) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if 0 <= value < count else None


def interpret_suggestion(
    raw: dict, candidate_count: int, existing_ids: dict[str, uuid.UUID]
) -> ConvertSuggestion | str:
    """
    Turn the model's JSON into a suggestion with every candidate index placed
    exactly once. Returns an error message when a merge names an unknown slug.
    """
    assigned: set[int] = set()
    suggestion = ConvertSuggestion()

    for value in raw.get("create") or []:
        index = _as_index(value, candidate_count)
        if index is not None and index not in assigned:
            assigned.add(index)
            suggestion.create.append(index)

    for item in raw.get("merge") or []:
        if not isinstance(item, dict) or not isinstance(item.get("intoExistingSlug"), str):
            continue
        index = _as_index(item.get("candidateIndex"), candidate_count)
        if index is None or index in assigned:
            continue
        slug = item["intoExistingSlug"]
        if slug not in existing_ids:
            return f'Merge target slug "{slug}" is not an existing system'
        assigned.add(index)
        suggestion.merge.append(
            MergeSuggestion(candidate_index=index, into_existing_slug=slug, existing_system_id=existing_ids[slug])
        )

    for value in raw.get("discard") or []:
        index = _as_index(value, candidate_count)
        if index is not None and index not in assigned:
            assigned.add(index)
            suggestion.discard.append(index)
    suggestion.discard.extend(i for i in range(candidate_count) if i not in assigned)

    for item in raw.get("dependencies") or []:
        if isinstance(item, dict) and isinstance(item.get("sourceSlug"), str) and isinstance(item.get("targetSlug"), str):
            suggestion.dependencies.append(
                DependencyEdgeIn(source_slug=item["sourceSlug"], target_slug=item["targetSlug"])
            )

    rationale = raw.get("rationale")
    if isinstance(rationale, str) and rationale.strip():
        suggestion.rationale = rationale.strip()
    return suggestion


async def run_convert_suggest(
    session: Session,
    project_id: uuid.UUID,
    output_id: uuid.UUID,
    request: ConvertSuggestRequest,
    *,
    provider: AIProvider | None = None,
) -> ConvertSuggestResult:
    output = crud.get_synthesized_output(session=session, output_id=output_id)
    if output is None or output.project_id != project_id:
        return ConvertSuggestResult(
            success=False, error="Synthesis output not found or project mismatch", code="NOT_FOUND"
        )

    candidates = [ExtractedSystem.model_validate(s) for s in output.extracted_systems or [] if isinstance(s, dict)]
    systems = crud.find_project_systems(session, project_id)
    existing = [ExistingSystemRef(id=s.id, system_slug=s.system_slug) for s in systems]
    user_prompt = build_user_prompt(candidates, existing, {s.system_slug: s.name for s in systems})

    try:
        completion = await run_completion(
            request.provider_id,
            f"{CONVERT_SUGGEST_SYSTEM_PROMPT}\n\n{user_prompt}",
            model=request.model,
            max_tokens=settings.CONVERT_SUGGEST_MAX_TOKENS,
            provider=provider,
        )
    except UnsupportedProviderError as exc:
        return ConvertSuggestResult(success=False, error=exc.message, code="VALIDATION")
    except ProviderError as exc:
        logger.error("Convert suggestion for output %s failed: %s", output_id, exc)
        return ConvertSuggestResult(success=False, error=exc.message, code="AI_ERROR")

    if not completion.content.strip():
        return ConvertSuggestResult(success=False, error="No response from AI", code="AI_ERROR")

    raw = extract_json_object(completion.content)
    if raw is None:
        logger.warning("Convert suggestion for output %s was not JSON", output_id)
        return ConvertSuggestResult(success=False, error="Invalid JSON in AI response", code="AI_ERROR")

    suggestion = interpret_suggestion(raw, len(candidates), {ref.system_slug: ref.id for ref in existing})
    if isinstance(suggestion, str):
        return ConvertSuggestResult(success=False, error=suggestion, code="AI_ERROR")

    return ConvertSuggestResult(
        success=True,
        suggestion=suggestion,
        existing_systems=existing,
        user_prompt=user_prompt,
    )
