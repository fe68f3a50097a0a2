import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

from pydantic import BaseModel
from sqlmodel import Session

from planner import crud
from planner.core.config import settings
from planner.exceptions import NotFoundError, ProviderError, UnsupportedProviderError
from planner.models import SynthesizedOutputCreate
from planner.synthesis.artifacts import ParsedSynthesis, dump_candidates
from planner.synthesis.assembler import RerunMode, assemble_synthesis_context
from planner.synthesis.parser import parse_synthesis_response
from planner.synthesis.providers import (
    AIProvider,
    CompletionUsage,
    DoneChunk,
    TextChunk,
    provider_class,
    run_completion_stream,
)
from planner.synthesis.snapshots import create_context_snapshot

logger = logging.getLogger(__name__)


class SynthesisRunRequest(BaseModel):
    brainstorm_session_id: uuid.UUID
    provider_id: str = "openai"
    model: str | None = None
    rerun_mode: RerunMode = "rerun"


def _event(name: str, **payload: Any) -> dict[str, str]:
    return {"event": name, "data": json.dumps(payload)}


def _candidate_lists(parsed: ParsedSynthesis) -> dict[str, list]:
    return {
        "extracted_systems": dump_candidates(parsed.extracted_systems),
        "extracted_system_details": dump_candidates(parsed.extracted_system_details),
        "suggested_systems": dump_candidates(parsed.suggested_systems),
        "suggested_system_details": dump_candidates(parsed.suggested_system_details),
    }


async def run_synthesis_stream(
    session: Session,
    request: SynthesisRunRequest,
    *,
    provider: AIProvider | None = None,
) -> AsyncIterator[dict[str, str]]:
    """
    Run one synthesis and yield SSE events: `prompt`, then `chunk` per text
    fragment, then a single `done` or `error`.

    On success the parsed output is saved and a `synthesis` snapshot is
    recorded. A provider failure saves the partial text as a `failed` output
    and records no snapshot. Closing the generator aborts the provider call;
    a provider resolved from `request.provider_id` is closed when the run ends.
    """
    brainstorm = crud.get_brainstorm(session=session, brainstorm_id=request.brainstorm_session_id)
    if brainstorm is None:
        yield _event("error", message="Brainstorm session not found")
        return

    if provider is None:
        try:
            provider_class(request.provider_id)
        except UnsupportedProviderError as exc:
            yield _event("error", message=exc.message)
            return

    try:
        assembled = assemble_synthesis_context(
            session, brainstorm.project_id, brainstorm.id, request.rerun_mode
        )
    except NotFoundError as exc:
        yield _event("error", message=exc.message)
        return

    yield _event("prompt", prompt=assembled.full_prompt)

    parts: list[str] = []
    usage: CompletionUsage | None = None
    chunks = run_completion_stream(
        request.provider_id,
        assembled.full_prompt,
        model=request.model,
        max_tokens=settings.SYNTHESIS_MAX_TOKENS,
        provider=provider,
    )
    try:
        async with aclosing(chunks):
            async for chunk in chunks:
                if isinstance(chunk, TextChunk):
                    parts.append(chunk.text)
                    yield _event("chunk", text=chunk.text)
                elif isinstance(chunk, DoneChunk):
                    usage = chunk.usage
    except ProviderError as exc:
        raw_content = "".join(parts)
        logger.error("Synthesis for brainstorm %s failed: %s", brainstorm.id, exc)
        failed = crud.create_synthesized_output(
            session=session,
            output_in=SynthesizedOutputCreate(
                project_id=brainstorm.project_id,
                brainstorm_session_id=brainstorm.id,
                title=brainstorm.title,
                content=raw_content,
                status="failed",
                ai_provider=request.provider_id,
                ai_model=request.model,
            ),
        )
        yield _event("error", message=exc.message, outputId=str(failed.id), rawContent=raw_content)
        return

    raw_content = "".join(parts)
    parsed = parse_synthesis_response(raw_content)
    output = crud.create_synthesized_output(
        session=session,
        output_in=SynthesizedOutputCreate(
            project_id=brainstorm.project_id,
            brainstorm_session_id=brainstorm.id,
            title=brainstorm.title,
            content=raw_content,
            ai_provider=request.provider_id,
            ai_model=request.model,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            **_candidate_lists(parsed),
        ),
    )
    create_context_snapshot(
        session,
        brainstorm.project_id,
        trigger="synthesis",
        related_synthesis_output_id=output.id,
        related_brainstorm_session_id=brainstorm.id,
    )
    logger.info(
        "Synthesis output %s saved (%s systems, %s details, parse mode %s)",
        output.id,
        len(parsed.extracted_systems),
        len(parsed.extracted_system_details),
        parsed.parse_mode,
    )

    yield _event(
        "done",
        outputId=str(output.id),
        promptTokens=output.prompt_tokens,
        completionTokens=output.completion_tokens,
        parseMode=parsed.parse_mode,
        extractedSystems=output.extracted_systems,
        extractedSystemDetails=output.extracted_system_details,
        suggestedSystems=output.suggested_systems,
        suggestedSystemDetails=output.suggested_system_details,
        rawContent=raw_content,
    )
