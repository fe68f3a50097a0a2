import uuid
from typing import Any

from fastapi import APIRouter, HTTPException

from planner.api.deps import SessionDep
from planner.api.routes.synthesis import raise_for_result
from planner.crud import find_project_systems, get_game_system, list_evolve_messages
from planner.models import ConversationMessagePublic, GameSystemPublic
from planner.synthesis.evolve import EvolveRequest, EvolveResult, run_system_evolve

router = APIRouter()


def _require_system(session: SessionDep, project_id: uuid.UUID, system_id: uuid.UUID) -> None:
    system = get_game_system(session=session, system_id=system_id)
    if not system or system.project_id != project_id:
        raise HTTPException(status_code=404, detail="System not found")


@router.get("/", response_model=list[GameSystemPublic])
def read_systems(project_id: uuid.UUID, session: SessionDep) -> Any:
    return find_project_systems(session, project_id)


@router.get("/{system_id}/evolve/messages", response_model=list[ConversationMessagePublic])
def read_evolve_messages(project_id: uuid.UUID, system_id: uuid.UUID, session: SessionDep) -> Any:
    _require_system(session, project_id, system_id)
    return list_evolve_messages(session, system_id)


@router.post("/{system_id}/evolve", response_model=EvolveResult)
async def evolve_system(
    project_id: uuid.UUID, system_id: uuid.UUID, payload: EvolveRequest, session: SessionDep
) -> Any:
    """One conversational evolve turn for a persisted system."""
    _require_system(session, project_id, system_id)
    result = await run_system_evolve(session, system_id, payload)
    if not result.success:
        raise_for_result(result.error, result.code)
    return result
