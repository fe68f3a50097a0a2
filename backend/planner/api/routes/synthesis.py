import uuid
from typing import Any, NoReturn

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from planner.api.deps import SessionDep
from planner.crud import get_brainstorm, get_synthesized_output, list_synthesis_messages
from planner.exceptions import UnsupportedProviderError
from planner.models import ConversationMessagePublic, SynthesizedOutput, SynthesizedOutputPublic
from planner.synthesis.artifacts import (
    CandidateSelection,
    ConversionResult,
    ConvertSynthesisInput,
    DependencyEdgeIn,
    ExtractedSystem,
)
from planner.synthesis.convert_suggest import ConvertSuggestRequest, ConvertSuggestResult, run_convert_suggest
from planner.synthesis.converter import convert_synthesis_to_systems, promote_suggestions, proposed_dependency_edges
from planner.synthesis.orchestrator import SynthesisRunRequest, run_synthesis_stream
from planner.synthesis.providers import provider_class
from planner.synthesis.refine import RefineRequest, RefineResult, run_refine

router = APIRouter()

ERROR_STATUS = {
    "NOT_FOUND": 404,
    "VALIDATION": 400,
    "CONFLICT": 409,
    "AI_ERROR": 502,
    "INTERNAL": 500,
}


class PromoteRequest(BaseModel):
    system_indices: list[int] = Field(default_factory=list)
    detail_indices: list[int] = Field(default_factory=list)


class ConvertRequest(BaseModel):
    selections: list[CandidateSelection] = Field(default_factory=list)
    dependency_edges: list[DependencyEdgeIn] = Field(default_factory=list)


def raise_for_result(error: str | None, code: str | None) -> NoReturn:
    raise HTTPException(status_code=ERROR_STATUS.get(code or "", 400), detail=error or "Request failed")


def _get_project_output(session: SessionDep, project_id: uuid.UUID, output_id: uuid.UUID) -> SynthesizedOutput:
    output = get_synthesized_output(session=session, output_id=output_id)
    if not output or output.project_id != project_id:
        raise HTTPException(status_code=404, detail="Synthesis output not found")
    return output


@router.post("/stream")
async def stream_synthesis(project_id: uuid.UUID, payload: SynthesisRunRequest, session: SessionDep):
    """Run a synthesis for one brainstorm and stream prompt, chunks and the parsed result via SSE."""
    brainstorm = get_brainstorm(session=session, brainstorm_id=payload.brainstorm_session_id)
    if not brainstorm or brainstorm.project_id != project_id:
        raise HTTPException(status_code=404, detail="Brainstorm session not found")
    try:
        provider_class(payload.provider_id)
    except UnsupportedProviderError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc

    return EventSourceResponse(run_synthesis_stream(session, payload))


@router.get("/outputs/{output_id}", response_model=SynthesizedOutputPublic)
def read_output(project_id: uuid.UUID, output_id: uuid.UUID, session: SessionDep) -> Any:
    return _get_project_output(session, project_id, output_id)


@router.get("/outputs/{output_id}/messages", response_model=list[ConversationMessagePublic])
def read_output_messages(project_id: uuid.UUID, output_id: uuid.UUID, session: SessionDep) -> Any:
    _get_project_output(session, project_id, output_id)
    return list_synthesis_messages(session, output_id)


@router.get("/outputs/{output_id}/proposed-dependencies", response_model=list[DependencyEdgeIn])
def read_proposed_dependencies(project_id: uuid.UUID, output_id: uuid.UUID, session: SessionDep) -> Any:
    output = _get_project_output(session, project_id, output_id)
    systems = [ExtractedSystem.model_validate(s) for s in output.extracted_systems or [] if isinstance(s, dict)]
    return proposed_dependency_edges(systems)


@router.post("/outputs/{output_id}/promote", response_model=SynthesizedOutputPublic)
def promote_output_suggestions(
    project_id: uuid.UUID, output_id: uuid.UUID, payload: PromoteRequest, session: SessionDep
) -> Any:
    _get_project_output(session, project_id, output_id)
    result = promote_suggestions(session, output_id, payload.system_indices, payload.detail_indices)
    if not result.success:
        raise_for_result(result.error, result.code)
    return result.data


@router.post("/outputs/{output_id}/refine", response_model=RefineResult)
async def refine_output(
    project_id: uuid.UUID, output_id: uuid.UUID, payload: RefineRequest, session: SessionDep
) -> Any:
    _get_project_output(session, project_id, output_id)
    result = await run_refine(session, output_id, payload)
    if not result.success:
        raise_for_result(result.error, result.code)
    return result


@router.post("/outputs/{output_id}/convert-suggest", response_model=ConvertSuggestResult)
async def suggest_conversion(
    project_id: uuid.UUID, output_id: uuid.UUID, payload: ConvertSuggestRequest, session: SessionDep
) -> Any:
    result = await run_convert_suggest(session, project_id, output_id, payload)
    if not result.success:
        raise_for_result(result.error, result.code)
    return result


@router.post("/outputs/{output_id}/convert", response_model=ConversionResult)
def convert_output(
    project_id: uuid.UUID, output_id: uuid.UUID, payload: ConvertRequest, session: SessionDep
) -> Any:
    _get_project_output(session, project_id, output_id)
    result = convert_synthesis_to_systems(
        session,
        ConvertSynthesisInput(
            output_id=output_id,
            selections=payload.selections,
            dependency_edges=payload.dependency_edges,
        ),
    )
    if not result.success:
        raise_for_result(result.error, result.code)
    return result
