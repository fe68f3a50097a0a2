import logging
import uuid

from sqlmodel import Session

from planner import crud
from planner.models import DependencyCreate, DependencyPublic
from planner.synthesis.artifacts import ServiceResult

logger = logging.getLogger(__name__)

DEFAULT_DEPENDENCY_TYPE = "requires"


def add_dependency(
    session: Session,
    source_system_id: uuid.UUID,
    target_system_id: uuid.UUID,
    dependency_type: str | None = None,
    description: str | None = None,
    *,
    commit: bool = True,
) -> ServiceResult:
    """
    Insert one edge. Cycles are allowed; self-edges, edges across projects and
    repeats of the same (source, target, type) are rejected.
    """
    if source_system_id == target_system_id:
        return ServiceResult.fail("A system cannot depend on itself", "VALIDATION")

    source = crud.get_game_system(session=session, system_id=source_system_id)
    target = crud.get_game_system(session=session, system_id=target_system_id)
    if source is None or target is None:
        return ServiceResult.fail("Source or target system not found", "NOT_FOUND")
    if source.project_id != target.project_id:
        return ServiceResult.fail("Systems belong to different projects", "VALIDATION")

    dep_type = (dependency_type or "").strip() or DEFAULT_DEPENDENCY_TYPE
    existing = crud.find_dependency(
        session=session,
        source_system_id=source_system_id,
        target_system_id=target_system_id,
        dependency_type=dep_type,
    )
    if existing is not None:
        return ServiceResult.fail(
            f"Dependency {source.system_slug} -> {target.system_slug} ({dep_type}) already exists",
            "CONFLICT",
        )

    dependency = crud.create_dependency(
        session=session,
        dependency_in=DependencyCreate(
            source_system_id=source_system_id,
            target_system_id=target_system_id,
            dependency_type=dep_type,
            description=description,
        ),
        commit=commit,
    )
    logger.info(
        "Added dependency %s -> %s (%s)", source.system_slug, target.system_slug, dep_type
    )
    return ServiceResult.ok(DependencyPublic.model_validate(dependency))
