import json
import logging
import uuid
from typing import Any, Literal

from sqlmodel import Session

from planner import crud
from planner.core.config import settings
from planner.exceptions import NotFoundError
from planner.synthesis.artifacts import AssembledSynthesisContext, DeltaEntity, SnapshotContent
from planner.synthesis.context_builder import build_delta_since_snapshot, build_full_context
from planner.synthesis.prompts.synthesis import EXTRACTION_INSTRUCTIONS
from planner.synthesis.snapshots import get_latest_snapshot, parse_snapshot_content

logger = logging.getLogger(__name__)

RerunMode = Literal["rerun", "update_context"]

NO_CHANGES_TEXT = "No changes since last snapshot."


def _dumps(value: Any) -> str:
    # Sorted keys keep identical inputs byte-identical across reruns.
    return json.dumps(value, indent=2, sort_keys=True, ensure_ascii=False)


def _truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    dropped = len(text) - limit
    return f"{text[:limit]}\n...[truncated {dropped} characters]"


def assemble_for_synthesis(
    snapshot_content: SnapshotContent,
    delta: list[DeltaEntity],
    new_brainstorm_content: str,
    new_brainstorm_title: str | None = None,
    *,
    max_snapshot_chars: int | None = None,
    max_delta_chars: int | None = None,
) -> AssembledSynthesisContext:
    """Combine snapshot, delta and the new brainstorm into one bounded prompt. Deterministic."""
    snapshot_limit = settings.CONTEXT_SNAPSHOT_MAX_CHARS if max_snapshot_chars is None else max_snapshot_chars
    delta_limit = settings.CONTEXT_DELTA_MAX_CHARS if max_delta_chars is None else max_delta_chars

    snapshot_text = _truncate(_dumps(snapshot_content.to_json()), snapshot_limit)
    if delta:
        delta_json = _dumps([entity.model_dump(mode="json", by_alias=True) for entity in delta])
        delta_text = "## Changes since last snapshot\n\n" + _truncate(delta_json, delta_limit)
    else:
        delta_text = NO_CHANGES_TEXT

    if new_brainstorm_title:
        brainstorm_text = f"## New brainstorm: {new_brainstorm_title}\n\n{new_brainstorm_content}"
    else:
        brainstorm_text = f"## New brainstorm content\n\n{new_brainstorm_content}"

    full_prompt = "\n".join(
        [
            "# Project context (snapshot)",
            snapshot_text,
            "",
            delta_text,
            "",
            brainstorm_text,
            "",
            "# Instructions",
            EXTRACTION_INSTRUCTIONS,
        ]
    )
    return AssembledSynthesisContext(
        snapshot_content=snapshot_text,
        delta_content=delta_text,
        new_brainstorm_content=brainstorm_text,
        instructions=EXTRACTION_INSTRUCTIONS,
        full_prompt=full_prompt,
    )


def assemble_synthesis_context(
    session: Session,
    project_id: uuid.UUID,
    brainstorm_session_id: uuid.UUID,
    mode: RerunMode = "rerun",
) -> AssembledSynthesisContext:
    """
    `rerun` reuses the latest snapshot plus the delta since it (full context
    when no snapshot exists yet); `update_context` rebuilds everything and
    sends no delta.
    """
    brainstorm = crud.get_brainstorm(session=session, brainstorm_id=brainstorm_session_id)
    if brainstorm is None or brainstorm.project_id != project_id:
        raise NotFoundError("Brainstorm session", brainstorm_session_id)

    delta: list[DeltaEntity] = []
    snapshot = get_latest_snapshot(session, project_id) if mode == "rerun" else None
    if snapshot is not None:
        snapshot_content = parse_snapshot_content(snapshot)
        delta = [
            entity
            for entity in build_delta_since_snapshot(session, project_id, snapshot)
            if not (entity.kind == "brainstorm" and entity.id == str(brainstorm.id))
        ]
        logger.info(
            "Assembling rerun context for project %s from snapshot %s with %s delta record(s)",
            project_id,
            snapshot.id,
            len(delta),
        )
    else:
        snapshot_content = build_full_context(session, project_id)
        logger.info("Assembling full context for project %s (mode=%s)", project_id, mode)

    return assemble_for_synthesis(snapshot_content, delta, brainstorm.content, brainstorm.title)
