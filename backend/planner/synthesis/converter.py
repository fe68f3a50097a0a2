"""
Conversion of reviewed synthesis candidates into game systems.

The whole conversion is one transaction: rows are flushed as they are built
so later steps (slug checks, edge resolution) see them, and a single commit at
the end makes them visible. Anything unexpected rolls everything back.
Selections and edges that cannot be applied are skipped and listed in
`ConversionResult.skipped`.
"""

import logging
import re
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from planner import crud
from planner.models import (
    DETAIL_TYPES,
    GameSystem,
    GameSystemCreate,
    GameSystemPublic,
    SynthesizedOutput,
    SystemDetailCreate,
)
from planner.synthesis.artifacts import (
    CandidateSelection,
    ConversionResult,
    ConvertSynthesisInput,
    DependencyEdgeIn,
    ExtractedSystem,
    ExtractedSystemDetail,
    ServiceResult,
    SkippedItem,
)
from planner.synthesis.dependencies import add_dependency
from planner.synthesis.parser import normalize_dependency_entry
from planner.synthesis.snapshots import create_context_snapshot

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "v0.1"
DEFAULT_CRITICALITY = "important"
DEFAULT_DETAIL_NAME = "System detail"


def slugify(name: str) -> str:
    slug = re.sub(r"\s+", "-", (name or "").strip().lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    return re.sub(r"-{2,}", "-", slug).strip("-")


def suggest_slug_for_new_system(session: Session, project_id: uuid.UUID, base_slug: str) -> str:
    """First free slug of `base`, `base-2`, `base-3`, ... within the project."""
    base = base_slug or "system"
    if crud.get_game_system_by_slug(session=session, project_id=project_id, system_slug=base) is None:
        return base
    n = 2
    while crud.get_game_system_by_slug(
        session=session, project_id=project_id, system_slug=f"{base}-{n}"
    ) is not None:
        n += 1
    return f"{base}-{n}"


def _load_candidates(items: list, model: type) -> list:
    # Keeps positions stable so selection indices still line up with stored rows.
    return [model.model_validate(item) if isinstance(item, dict) else None for item in items or []]


def _candidate_slug(selection: CandidateSelection, candidate: ExtractedSystem) -> str:
    if selection.slug and selection.slug.strip():
        return selection.slug.strip()
    if candidate.system_slug and candidate.system_slug.strip():
        return candidate.system_slug.strip()
    return slugify(candidate.name or "") or "system"


def _create_system(
    session: Session, output: SynthesizedOutput, selection: CandidateSelection, candidate: ExtractedSystem
) -> GameSystem:
    slug = suggest_slug_for_new_system(session, output.project_id, _candidate_slug(selection, candidate))
    return crud.create_system(
        session=session,
        system_in=GameSystemCreate(
            project_id=output.project_id,
            synthesized_output_id=output.id,
            system_slug=slug,
            name=(candidate.name or "").strip() or slug,
            purpose=candidate.purpose,
            version=candidate.version or DEFAULT_VERSION,
            mvp_criticality=candidate.mvp_criticality or DEFAULT_CRITICALITY,
        ),
        commit=False,
    )


def _attach_details(
    session: Session,
    output: SynthesizedOutput,
    system: GameSystem,
    detail_indices: list[int],
    details: list[ExtractedSystemDetail | None],
) -> int:
    offset = len(crud.list_details_for_system(session, system.id))
    details_in: list[SystemDetailCreate] = []
    for index in detail_indices:
        detail = details[index] if 0 <= index < len(details) else None
        if detail is None:
            logger.warning("Ignoring unknown detail index %s for system %s", index, system.system_slug)
            continue
        detail_type = detail.detail_type if detail.detail_type in DETAIL_TYPES else "mechanic"
        details_in.append(
            SystemDetailCreate(
                game_system_id=system.id,
                synthesized_output_id=output.id,
                name=(detail.name or "").strip() or DEFAULT_DETAIL_NAME,
                detail_type=detail_type,
                spec=detail.spec or "",
                sort_order=offset + len(details_in),
            )
        )
    return len(crud.create_many_system_details(session=session, details_in=details_in, commit=False))


def _apply(session: Session, output: SynthesizedOutput, data: ConvertSynthesisInput) -> ConversionResult:
    systems = _load_candidates(output.extracted_systems, ExtractedSystem)
    details = _load_candidates(output.extracted_system_details, ExtractedSystemDetail)
    project_id = output.project_id

    slug_to_id = {s.system_slug: s.id for s in crud.find_project_systems(session, project_id)}
    result = ConversionResult(success=True)
    created: list[GameSystem] = []

    for selection in data.selections:
        if selection.action == "discard":
            continue

        candidate = systems[selection.candidate_index] if selection.candidate_index < len(systems) else None
        if candidate is None:
            result.skipped.append(
                SkippedItem(
                    kind="selection",
                    reason="Candidate not found",
                    candidate_index=selection.candidate_index,
                )
            )
            continue

        if selection.action == "create":
            system = _create_system(session, output, selection, candidate)
            created.append(system)
        else:
            system = (
                crud.get_game_system(session=session, system_id=selection.existing_system_id)
                if selection.existing_system_id
                else None
            )
            if system is None or system.project_id != project_id:
                logger.warning(
                    "Skipping merge of candidate %s: target system %s is not in project %s",
                    selection.candidate_index,
                    selection.existing_system_id,
                    project_id,
                )
                result.skipped.append(
                    SkippedItem(
                        kind="selection",
                        reason="Existing system not found in this project",
                        candidate_index=selection.candidate_index,
                    )
                )
                continue
            result.merged_system_ids.append(system.id)

        slug_to_id[system.system_slug] = system.id
        result.created_details_count += _attach_details(
            session, output, system, selection.detail_indices, details
        )

    for edge in data.dependency_edges:
        source_id = slug_to_id.get(edge.source_slug)
        target_id = slug_to_id.get(edge.target_slug)
        if source_id is None or target_id is None:
            logger.warning("Skipping edge %s -> %s: unresolved slug", edge.source_slug, edge.target_slug)
            result.skipped.append(
                SkippedItem(
                    kind="dependency",
                    reason="Unresolved slug",
                    source_slug=edge.source_slug,
                    target_slug=edge.target_slug,
                )
            )
            continue

        outcome: ServiceResult = add_dependency(
            session,
            source_id,
            target_id,
            edge.dependency_type,
            edge.description,
            commit=False,
        )
        if outcome.success:
            result.created_dependencies.append(outcome.data)
        else:
            result.skipped.append(
                SkippedItem(
                    kind="dependency",
                    reason=outcome.error or "Rejected",
                    source_slug=edge.source_slug,
                    target_slug=edge.target_slug,
                )
            )

    crud.update_synthesized_output(
        session=session, db_output=output, update={"status": "converted"}, commit=False
    )
    create_context_snapshot(
        session,
        project_id,
        trigger="conversion",
        related_synthesis_output_id=output.id,
        related_brainstorm_session_id=output.brainstorm_session_id,
        commit=False,
    )
    result.created_systems = [GameSystemPublic.model_validate(system) for system in created]
    return result


def convert_synthesis_to_systems(session: Session, data: ConvertSynthesisInput) -> ConversionResult:
    output = crud.get_synthesized_output(session=session, output_id=data.output_id)
    if output is None:
        return ConversionResult(success=False, error="Synthesis output not found", code="NOT_FOUND")

    try:
        result = _apply(session, output, data)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Conversion of output %s rolled back: %s", data.output_id, exc)
        return ConversionResult(success=False, error="Conversion failed; nothing was saved", code="INTERNAL")
    except Exception:
        session.rollback()
        raise

    logger.info(
        "Converted output %s: %s created, %s merged, %s details, %s dependencies, %s skipped",
        data.output_id,
        len(result.created_systems),
        len(result.merged_system_ids),
        result.created_details_count,
        len(result.created_dependencies),
        len(result.skipped),
    )
    return result


def proposed_dependency_edges(systems: list[ExtractedSystem]) -> list[DependencyEdgeIn]:
    """Edges implied by each candidate's own `dependencies` list, deduplicated."""
    edges: list[DependencyEdgeIn] = []
    seen: set[tuple[str, str]] = set()
    for system in systems:
        source = (system.system_slug or "").strip() or slugify(system.name or "")
        if not source:
            continue
        for entry in system.dependencies or []:
            dependency = normalize_dependency_entry(entry)
            target = dependency.slug.strip()
            if not target or target == source or (source, target) in seen:
                continue
            seen.add((source, target))
            edges.append(
                DependencyEdgeIn(source_slug=source, target_slug=target, description=dependency.description)
            )
    return edges


def promote_suggestions(
    session: Session,
    output_id: uuid.UUID,
    system_indices: list[int],
    detail_indices: list[int],
) -> ServiceResult:
    """Move suggested candidates into the extracted lists, keeping the rest suggested."""
    output = crud.get_synthesized_output(session=session, output_id=output_id)
    if output is None:
        return ServiceResult.fail("Synthesis output not found", "NOT_FOUND")
    if output.status == "converted":
        return ServiceResult.fail("Output has already been converted", "CONFLICT")

    suggested_systems = list(output.suggested_systems or [])
    suggested_details = list(output.suggested_system_details or [])
    system_picks = sorted({i for i in system_indices if 0 <= i < len(suggested_systems)})
    detail_picks = sorted({i for i in detail_indices if 0 <= i < len(suggested_details)})
    if not system_picks and not detail_picks:
        return ServiceResult.fail("No valid suggestion indices", "VALIDATION")

    updated = crud.update_synthesized_output(
        session=session,
        db_output=output,
        update={
            "extracted_systems": list(output.extracted_systems or [])
            + [suggested_systems[i] for i in system_picks],
            "extracted_system_details": list(output.extracted_system_details or [])
            + [suggested_details[i] for i in detail_picks],
            "suggested_systems": [s for i, s in enumerate(suggested_systems) if i not in system_picks],
            "suggested_system_details": [
                d for i, d in enumerate(suggested_details) if i not in detail_picks
            ],
        },
    )
    logger.info(
        "Promoted %s system(s) and %s detail(s) on output %s",
        len(system_picks),
        len(detail_picks),
        output_id,
    )
    return ServiceResult.ok(updated)
