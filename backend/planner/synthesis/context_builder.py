"""
Project-state serialization for synthesis prompts.

`build_full_context` produces the snapshot payload; `build_delta_since_snapshot`
lists what changed after a snapshot was taken. Both only read. Size limits are
applied later, by the assembler.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlmodel import Session

from planner import crud
from planner.exceptions import NotFoundError
from planner.models import ContextSnapshot, SystemDetail
from planner.synthesis.artifacts import (
    BrainstormsSummary,
    DeltaEntity,
    SnapshotChangesSummary,
    SnapshotContent,
    SnapshotDependencyGraph,
    SnapshotEdge,
    SnapshotProject,
    SnapshotSystem,
    SnapshotSystemDetail,
)
from planner.synthesis.graph import build_graph, detect_cycles, topological_sort

logger = logging.getLogger(__name__)

CONTENT_VERSION = 1
SPEC_SNIPPET_MAX_LEN = 500
PURPOSE_ROLLUP_MAX_LEN = 280


def _as_utc(value: datetime | None) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return _as_utc(value).isoformat() if value is not None else None


def _spec_snippet(spec: str) -> str:
    if len(spec) <= SPEC_SNIPPET_MAX_LEN:
        return spec
    return spec[:SPEC_SNIPPET_MAX_LEN] + "..."


def derive_purpose_from_details(details: list[SystemDetail]) -> str | None:
    """First mechanic spec (or first non-empty spec), trimmed to one short paragraph."""
    ordered = sorted(details, key=lambda d: (d.sort_order, _as_utc(d.created_at)))
    mechanics = [d for d in ordered if d.detail_type == "mechanic" and d.spec.strip()]
    source = mechanics[0] if mechanics else next((d for d in ordered if d.spec.strip()), None)
    if source is None:
        return None
    text = source.spec.strip().split("\n\n", 1)[0].strip()
    if len(text) > PURPOSE_ROLLUP_MAX_LEN:
        text = text[:PURPOSE_ROLLUP_MAX_LEN].rstrip() + "..."
    return text


def build_full_context(session: Session, project_id: uuid.UUID) -> SnapshotContent:
    project = crud.get_project(session=session, project_id=project_id)
    if project is None:
        raise NotFoundError("Project", project_id)

    systems = crud.find_project_systems(session, project_id)
    details = crud.list_system_details(session, project_id)
    dependencies = crud.find_dependencies(session, project_id)
    brainstorms = sorted(
        crud.list_brainstorms(session, project_id),
        key=lambda b: (_as_utc(b.created_at), str(b.id)),
    )

    details_by_system: dict[uuid.UUID, list[SystemDetail]] = {}
    for detail in details:
        details_by_system.setdefault(detail.game_system_id, []).append(detail)

    slug_by_id = {system.id: system.system_slug for system in systems}

    snapshot_systems: list[SnapshotSystem] = []
    for system in systems:
        system_details = details_by_system.get(system.id, [])
        purpose = (system.purpose or "").strip() or derive_purpose_from_details(system_details)
        snapshot_systems.append(
            SnapshotSystem(
                slug=system.system_slug,
                name=system.name,
                version=system.version,
                purpose=purpose,
                current_state=system.current_state,
                target_state=system.target_state,
                dependencies=[
                    slug_by_id.get(dep.target_system_id, str(dep.target_system_id))
                    for dep in dependencies
                    if dep.source_system_id == system.id
                ],
                mvp_criticality=system.mvp_criticality,
                last_updated=_iso(system.updated_at),
                system_details=[
                    SnapshotSystemDetail(
                        id=str(detail.id),
                        name=detail.name,
                        detail_type=detail.detail_type,
                        spec_snippet=_spec_snippet(detail.spec),
                        source_synthesis_id=(
                            str(detail.synthesized_output_id) if detail.synthesized_output_id else None
                        ),
                    )
                    for detail in system_details
                ],
            )
        )

    graph = build_graph(
        [system.system_slug for system in systems],
        [
            (slug_by_id[dep.source_system_id], slug_by_id[dep.target_system_id])
            for dep in dependencies
            if dep.source_system_id in slug_by_id and dep.target_system_id in slug_by_id
        ],
    )
    order = topological_sort(graph)
    if order is None:
        # Cycles are allowed; they only leave the snapshot without a topological order.
        logger.info(
            "Dependency graph of project %s has cycles: %s",
            project_id,
            "; ".join(" -> ".join(cycle + cycle[:1]) for cycle in detect_cycles(graph)),
        )
    dependency_graph = SnapshotDependencyGraph(
        edges=[
            SnapshotEdge(
                source_slug=slug_by_id.get(dep.source_system_id, str(dep.source_system_id)),
                target_slug=slug_by_id.get(dep.target_system_id, str(dep.target_system_id)),
                type=dep.dependency_type,
            )
            for dep in dependencies
        ],
        topological_order=order,
    )

    brainstorms_summary = BrainstormsSummary(
        count=len(brainstorms),
        titles=[b.title for b in brainstorms],
        dates=[_iso(b.created_at) or "" for b in brainstorms],
    )

    return SnapshotContent(
        schema_version=CONTENT_VERSION,
        project=SnapshotProject(
            name=project.name,
            description=project.description,
            genre=project.genre,
            platform=project.platform,
            status=project.status,
            created_at=_iso(project.created_at),
            updated_at=_iso(project.updated_at),
        ),
        changes_summary=SnapshotChangesSummary(
            brainstorms_added=brainstorms_summary,
            systems_added_updated=[system.system_slug for system in systems],
            dependencies_added=len(dependencies),
        ),
        systems=snapshot_systems,
        dependency_graph=dependency_graph,
        brainstorms_summary=brainstorms_summary,
    )


def _changed_since(created_at: datetime | None, updated_at: datetime | None, since: datetime) -> bool:
    return _as_utc(created_at) > since or (updated_at is not None and _as_utc(updated_at) > since)


def build_delta_since_snapshot(
    session: Session, project_id: uuid.UUID, snapshot: ContextSnapshot | None
) -> list[DeltaEntity]:
    """Entities created or updated after the snapshot, each with its current content."""
    if snapshot is None:
        raise NotFoundError("Context snapshot", project_id)
    if crud.get_project(session=session, project_id=project_id) is None:
        raise NotFoundError("Project", project_id)

    since = _as_utc(snapshot.created_at)
    delta: list[DeltaEntity] = []

    systems = crud.find_project_systems(session, project_id)
    slug_by_id = {system.id: system.system_slug for system in systems}
    for system in systems:
        if not _changed_since(system.created_at, system.updated_at, since):
            continue
        delta.append(
            DeltaEntity(
                kind="system",
                id=str(system.id),
                updated_at=_iso(system.updated_at or system.created_at) or "",
                content={
                    "slug": system.system_slug,
                    "name": system.name,
                    "version": system.version,
                    "status": system.status,
                    "purpose": system.purpose,
                    "currentState": system.current_state,
                    "targetState": system.target_state,
                    "coreMechanics": system.core_mechanics,
                    "inputs": system.inputs,
                    "outputs": system.outputs,
                    "mvpCriticality": system.mvp_criticality,
                    "implementationNotes": system.implementation_notes,
                    "openQuestions": system.open_questions,
                },
            )
        )

    for detail in crud.list_system_details(session, project_id):
        if not _changed_since(detail.created_at, detail.updated_at, since):
            continue
        delta.append(
            DeltaEntity(
                kind="systemDetail",
                id=str(detail.id),
                updated_at=_iso(detail.updated_at or detail.created_at) or "",
                content={
                    "systemSlug": slug_by_id.get(detail.game_system_id),
                    "name": detail.name,
                    "detailType": detail.detail_type,
                    "spec": detail.spec,
                    "sortOrder": detail.sort_order,
                },
            )
        )

    for dep in crud.find_dependencies(session, project_id):
        if not _changed_since(dep.created_at, dep.updated_at, since):
            continue
        delta.append(
            DeltaEntity(
                kind="dependency",
                id=str(dep.id),
                updated_at=_iso(dep.updated_at or dep.created_at) or "",
                content={
                    "sourceSlug": slug_by_id.get(dep.source_system_id),
                    "targetSlug": slug_by_id.get(dep.target_system_id),
                    "type": dep.dependency_type,
                    "description": dep.description,
                },
            )
        )

    for brainstorm in crud.list_brainstorms(session, project_id):
        if _as_utc(brainstorm.created_at) <= since:
            continue
        delta.append(
            DeltaEntity(
                kind="brainstorm",
                id=str(brainstorm.id),
                updated_at=_iso(brainstorm.created_at) or "",
                content={
                    "title": brainstorm.title,
                    "content": brainstorm.content,
                    "tags": brainstorm.tags,
                },
            )
        )

    delta.sort(key=lambda entity: (entity.updated_at, entity.kind, entity.id))
    return delta
