import uuid
from typing import Any

from sqlmodel import Session, SQLModel, col, select

from planner.models import (
    BrainstormSession,
    BrainstormSessionCreate,
    ContextSnapshot,
    Dependency,
    DependencyCreate,
    GameSystem,
    GameSystemCreate,
    GameSystemUpdate,
    Project,
    ProjectCreate,
    SynthesisConversationMessage,
    SynthesizedOutput,
    SynthesizedOutputCreate,
    SystemDetail,
    SystemDetailCreate,
    SystemEvolveMessage,
    get_datetime_utc,
)


def _save(session: Session, db_obj: SQLModel, *, commit: bool) -> None:
    """Persist one row. With commit=False the row is only flushed so the caller owns the transaction."""
    session.add(db_obj)
    if commit:
        session.commit()
        session.refresh(db_obj)
    else:
        session.flush()


def create_project(*, session: Session, project_in: ProjectCreate) -> Project:
    db_project = Project.model_validate(project_in)
    _save(session, db_project, commit=True)
    return db_project

def get_project(*, session: Session, project_id: uuid.UUID) -> Project | None:
    return session.get(Project, project_id)


def create_brainstorm(
    *, session: Session, brainstorm_in: BrainstormSessionCreate, project_id: uuid.UUID
) -> BrainstormSession:
    db_brainstorm = BrainstormSession.model_validate(brainstorm_in, update={"project_id": project_id})
    _save(session, db_brainstorm, commit=True)
    return db_brainstorm

def get_brainstorm(*, session: Session, brainstorm_id: uuid.UUID) -> BrainstormSession | None:
    return session.get(BrainstormSession, brainstorm_id)

def list_brainstorms(session: Session, project_id: uuid.UUID) -> list[BrainstormSession]:
    statement = (
        select(BrainstormSession)
        .where(BrainstormSession.project_id == project_id)
        .order_by(col(BrainstormSession.created_at).desc())
    )
    return list(session.exec(statement).all())


def find_project_systems(session: Session, project_id: uuid.UUID) -> list[GameSystem]:
    statement = (
        select(GameSystem)
        .where(GameSystem.project_id == project_id)
        .order_by(col(GameSystem.system_slug))
    )
    return list(session.exec(statement).all())

def get_game_system(*, session: Session, system_id: uuid.UUID) -> GameSystem | None:
    return session.get(GameSystem, system_id)

def get_game_system_by_slug(
    *, session: Session, project_id: uuid.UUID, system_slug: str
) -> GameSystem | None:
    statement = select(GameSystem).where(
        GameSystem.project_id == project_id,
        GameSystem.system_slug == system_slug,
    )
    return session.exec(statement).first()

def create_system(
    *, session: Session, system_in: GameSystemCreate, commit: bool = True
) -> GameSystem:
    db_system = GameSystem.model_validate(system_in)
    _save(session, db_system, commit=commit)
    return db_system

def update_system(
    *, session: Session, db_system: GameSystem, system_in: GameSystemUpdate, commit: bool = True
) -> GameSystem:
    system_data = system_in.model_dump(exclude_unset=True, exclude_none=True)
    db_system.sqlmodel_update(system_data, update={"updated_at": get_datetime_utc()})
    _save(session, db_system, commit=commit)
    return db_system


def list_system_details(session: Session, project_id: uuid.UUID) -> list[SystemDetail]:
    statement = (
        select(SystemDetail)
        .join(GameSystem, col(SystemDetail.game_system_id) == col(GameSystem.id))
        .where(GameSystem.project_id == project_id)
        .order_by(col(SystemDetail.sort_order), col(SystemDetail.created_at))
    )
    return list(session.exec(statement).all())

def list_details_for_system(session: Session, system_id: uuid.UUID) -> list[SystemDetail]:
    statement = (
        select(SystemDetail)
        .where(SystemDetail.game_system_id == system_id)
        .order_by(col(SystemDetail.sort_order), col(SystemDetail.created_at))
    )
    return list(session.exec(statement).all())

def create_many_system_details(
    *, session: Session, details_in: list[SystemDetailCreate], commit: bool = True
) -> list[SystemDetail]:
    db_details = [SystemDetail.model_validate(detail_in) for detail_in in details_in]
    if not db_details:
        return []
    session.add_all(db_details)
    if commit:
        session.commit()
        for db_detail in db_details:
            session.refresh(db_detail)
    else:
        session.flush()
    return db_details

def delete_details_for_system(*, session: Session, system_id: uuid.UUID, commit: bool = True) -> int:
    details = list_details_for_system(session, system_id)
    for detail in details:
        session.delete(detail)
    if commit:
        session.commit()
    else:
        session.flush()
    return len(details)


def find_dependencies(session: Session, project_id: uuid.UUID) -> list[Dependency]:
    statement = (
        select(Dependency)
        .join(GameSystem, col(Dependency.source_system_id) == col(GameSystem.id))
        .where(GameSystem.project_id == project_id)
        .order_by(col(Dependency.created_at))
    )
    return list(session.exec(statement).all())

def find_dependency(
    *,
    session: Session,
    source_system_id: uuid.UUID,
    target_system_id: uuid.UUID,
    dependency_type: str,
) -> Dependency | None:
    statement = select(Dependency).where(
        Dependency.source_system_id == source_system_id,
        Dependency.target_system_id == target_system_id,
        Dependency.dependency_type == dependency_type,
    )
    return session.exec(statement).first()

def create_dependency(
    *, session: Session, dependency_in: DependencyCreate, commit: bool = True
) -> Dependency:
    db_dependency = Dependency.model_validate(dependency_in)
    _save(session, db_dependency, commit=commit)
    return db_dependency


def create_snapshot(
    *,
    session: Session,
    project_id: uuid.UUID,
    content: dict[str, Any],
    content_version: int = 1,
    trigger: str = "synthesis",
    related_synthesis_output_id: uuid.UUID | None = None,
    related_brainstorm_session_id: uuid.UUID | None = None,
    commit: bool = True,
) -> ContextSnapshot:
    db_snapshot = ContextSnapshot(
        project_id=project_id,
        content=content,
        content_version=content_version,
        trigger=trigger,
        related_synthesis_output_id=related_synthesis_output_id,
        related_brainstorm_session_id=related_brainstorm_session_id,
    )
    _save(session, db_snapshot, commit=commit)
    return db_snapshot

def get_latest_snapshot(session: Session, project_id: uuid.UUID) -> ContextSnapshot | None:
    statement = (
        select(ContextSnapshot)
        .where(ContextSnapshot.project_id == project_id)
        .order_by(col(ContextSnapshot.created_at).desc())
    )
    return session.exec(statement).first()


def create_synthesized_output(
    *, session: Session, output_in: SynthesizedOutputCreate
) -> SynthesizedOutput:
    db_output = SynthesizedOutput.model_validate(output_in)
    _save(session, db_output, commit=True)
    return db_output

def get_synthesized_output(*, session: Session, output_id: uuid.UUID) -> SynthesizedOutput | None:
    return session.get(SynthesizedOutput, output_id)

def update_synthesized_output(
    *, session: Session, db_output: SynthesizedOutput, update: dict[str, Any], commit: bool = True
) -> SynthesizedOutput:
    # JSON columns are reassigned, never mutated in place, so the change is tracked.
    db_output.sqlmodel_update(update, update={"updated_at": get_datetime_utc()})
    _save(session, db_output, commit=commit)
    return db_output


def append_synthesis_message(
    *, session: Session, output_id: uuid.UUID, role: str, content: str
) -> SynthesisConversationMessage:
    db_message = SynthesisConversationMessage(
        synthesized_output_id=output_id, role=role, content=content
    )
    _save(session, db_message, commit=True)
    return db_message

def list_synthesis_messages(session: Session, output_id: uuid.UUID) -> list[SynthesisConversationMessage]:
    statement = (
        select(SynthesisConversationMessage)
        .where(SynthesisConversationMessage.synthesized_output_id == output_id)
        .order_by(col(SynthesisConversationMessage.created_at))
    )
    return list(session.exec(statement).all())

def append_evolve_message(
    *, session: Session, system_id: uuid.UUID, role: str, content: str
) -> SystemEvolveMessage:
    db_message = SystemEvolveMessage(game_system_id=system_id, role=role, content=content)
    _save(session, db_message, commit=True)
    return db_message

def list_evolve_messages(session: Session, system_id: uuid.UUID) -> list[SystemEvolveMessage]:
    statement = (
        select(SystemEvolveMessage)
        .where(SystemEvolveMessage.game_system_id == system_id)
        .order_by(col(SystemEvolveMessage.created_at))
    )
    return list(session.exec(statement).all())
