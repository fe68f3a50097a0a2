import logging
import uuid

from sqlmodel import Session

from planner import crud
from planner.models import ContextSnapshot
from planner.synthesis.artifacts import SnapshotContent
from planner.synthesis.context_builder import build_full_context

logger = logging.getLogger(__name__)


def create_context_snapshot(
    session: Session,
    project_id: uuid.UUID,
    *,
    trigger: str = "synthesis",
    related_synthesis_output_id: uuid.UUID | None = None,
    related_brainstorm_session_id: uuid.UUID | None = None,
    commit: bool = True,
) -> ContextSnapshot:
    """Append a snapshot of the current project state. Snapshots are never updated."""
    content = build_full_context(session, project_id)
    snapshot = crud.create_snapshot(
        session=session,
        project_id=project_id,
        content=content.to_json(),
        content_version=content.schema_version,
        trigger=trigger,
        related_synthesis_output_id=related_synthesis_output_id,
        related_brainstorm_session_id=related_brainstorm_session_id,
        commit=commit,
    )
    logger.info(
        "Recorded %s context snapshot %s for project %s (%s systems)",
        trigger,
        snapshot.id,
        project_id,
        len(content.systems),
    )
    return snapshot


def get_latest_snapshot(session: Session, project_id: uuid.UUID) -> ContextSnapshot | None:
    return crud.get_latest_snapshot(session, project_id)


def parse_snapshot_content(snapshot: ContextSnapshot) -> SnapshotContent:
    return SnapshotContent.model_validate(snapshot.content)
