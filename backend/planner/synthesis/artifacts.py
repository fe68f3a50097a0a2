import copy
import uuid
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationInfo,
    field_validator,
    model_validator,
)

from planner.models import DependencyPublic, GameSystemPublic


# Candidates recovered from model output. The model's field set varies, so the
# known fields are typed and everything else lands in `extra`. A known field
# holding the wrong JSON type reads as None; the candidate itself is kept and
# `to_json` returns the object exactly as the model sent it.

def _loose_dependencies(value: Any) -> list | None:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return None
    return [
        item
        for item in value
        if isinstance(item, str) or (isinstance(item, dict) and isinstance(item.get("slug"), str))
    ]


class CandidateModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    _raw: dict[str, Any] | None = PrivateAttr(default=None)

    @field_validator("*", mode="before")
    @classmethod
    def _drop_mistyped(cls, value: Any, info: ValidationInfo) -> Any:
        if info.field_name == "dependencies":
            return _loose_dependencies(value)
        return value if value is None or isinstance(value, str) else None

    @model_validator(mode="wrap")
    @classmethod
    def _remember_input(cls, data: Any, handler):
        candidate = handler(data)
        if isinstance(data, dict):
            candidate._raw = copy.deepcopy(data)
        return candidate

    @property
    def extra(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def to_json(self) -> dict[str, Any]:
        """Wire shape (camelCase, only the keys that were present)."""
        if self._raw is not None:
            return copy.deepcopy(self._raw)
        return self.model_dump(by_alias=True, exclude_unset=True)


class DependencyEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    slug: str
    description: str | None = None

    @field_validator("description", mode="before")
    @classmethod
    def _text_only(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None


class ExtractedSystem(CandidateModel):
    name: str | None = None
    system_slug: str | None = Field(default=None, alias="systemSlug")
    purpose: str | None = None
    version: str | None = None
    status: str | None = None
    mvp_criticality: str | None = Field(default=None, alias="mvpCriticality")
    dependencies: list[str | DependencyEntry] | None = None


class ExtractedSystemDetail(CandidateModel):
    name: str | None = None
    detail_type: str | None = Field(default=None, alias="detailType")
    spec: str | None = None
    target_system_slug: str | None = Field(default=None, alias="targetSystemSlug")
    system_slug: str | None = Field(default=None, alias="systemSlug")


def dump_candidates(items: list[CandidateModel]) -> list[dict[str, Any]]:
    return [item.to_json() for item in items]


class ParsedSynthesis(BaseModel):
    """Parser output. Always well-formed; `parse_mode == "none"` means nothing structured was recovered."""
    extracted_systems: list[ExtractedSystem] = Field(default_factory=list)
    extracted_system_details: list[ExtractedSystemDetail] = Field(default_factory=list)
    suggested_systems: list[ExtractedSystem] = Field(default_factory=list)
    suggested_system_details: list[ExtractedSystemDetail] = Field(default_factory=list)
    raw_content: str = ""
    parse_mode: Literal["json", "embedded", "regex", "none"] = "none"

    @property
    def is_empty(self) -> bool:
        return not self.extracted_systems and not self.extracted_system_details


# Snapshot content, stored as JSON on ContextSnapshot.content (camelCase keys).

class SnapshotModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SnapshotProject(SnapshotModel):
    name: str
    description: str | None = None
    genre: str | None = None
    platform: str | None = None
    status: str
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class SnapshotSystemDetail(SnapshotModel):
    id: str
    name: str
    detail_type: str = Field(alias="detailType")
    spec_snippet: str = Field(alias="specSnippet")
    source_synthesis_id: str | None = Field(default=None, alias="sourceSynthesisId")


class SnapshotSystem(SnapshotModel):
    slug: str
    name: str
    version: str
    purpose: str | None = None
    current_state: str | None = Field(default=None, alias="currentState")
    target_state: str | None = Field(default=None, alias="targetState")
    dependencies: list[str] = Field(default_factory=list)
    mvp_criticality: str = Field(alias="mvpCriticality")
    last_updated: str | None = Field(default=None, alias="lastUpdated")
    system_details: list[SnapshotSystemDetail] = Field(default_factory=list, alias="systemDetails")


class SnapshotEdge(SnapshotModel):
    source_slug: str = Field(alias="sourceSlug")
    target_slug: str = Field(alias="targetSlug")
    type: str


class SnapshotDependencyGraph(SnapshotModel):
    edges: list[SnapshotEdge] = Field(default_factory=list)
    topological_order: list[str] | None = Field(default=None, alias="topologicalOrder")


class BrainstormsSummary(SnapshotModel):
    count: int = 0
    titles: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)


class SnapshotChangesSummary(SnapshotModel):
    brainstorms_added: BrainstormsSummary | None = Field(default=None, alias="brainstormsAdded")
    systems_added_updated: list[str] = Field(default_factory=list, alias="systemsAddedUpdated")
    dependencies_added: int = Field(default=0, alias="dependenciesAdded")


class SnapshotContent(SnapshotModel):
    schema_version: int = Field(alias="schemaVersion")
    project: SnapshotProject
    changes_summary: SnapshotChangesSummary = Field(
        default_factory=SnapshotChangesSummary, alias="changesSummary"
    )
    systems: list[SnapshotSystem] = Field(default_factory=list)
    dependency_graph: SnapshotDependencyGraph = Field(
        default_factory=SnapshotDependencyGraph, alias="dependencyGraph"
    )
    brainstorms_summary: BrainstormsSummary = Field(
        default_factory=BrainstormsSummary, alias="brainstormsSummary"
    )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DeltaEntity(SnapshotModel):
    kind: Literal["system", "systemDetail", "dependency", "brainstorm"]
    id: str
    updated_at: str = Field(alias="updatedAt")
    content: dict[str, Any] = Field(default_factory=dict)


class AssembledSynthesisContext(BaseModel):
    snapshot_content: str
    delta_content: str
    new_brainstorm_content: str
    instructions: str
    full_prompt: str


# Conversion

class CandidateSelection(BaseModel):
    candidate_index: int = Field(ge=0)
    action: Literal["create", "merge", "discard"]
    slug: str | None = None
    existing_system_id: uuid.UUID | None = None
    detail_indices: list[int] = Field(default_factory=list)


class DependencyEdgeIn(BaseModel):
    source_slug: str
    target_slug: str
    description: str | None = None
    dependency_type: str | None = None


class ConvertSynthesisInput(BaseModel):
    output_id: uuid.UUID
    selections: list[CandidateSelection] = Field(default_factory=list)
    dependency_edges: list[DependencyEdgeIn] = Field(default_factory=list)


class SkippedItem(BaseModel):
    kind: Literal["selection", "dependency"]
    reason: str
    candidate_index: int | None = None
    source_slug: str | None = None
    target_slug: str | None = None


class CycleEdge(BaseModel):
    source_slug: str
    target_slug: str


class ConversionResult(BaseModel):
    success: bool
    error: str | None = None
    code: str | None = None
    created_systems: list[GameSystemPublic] = Field(default_factory=list)
    merged_system_ids: list[uuid.UUID] = Field(default_factory=list)
    created_details_count: int = 0
    created_dependencies: list[DependencyPublic] = Field(default_factory=list)
    skipped: list[SkippedItem] = Field(default_factory=list)
    # Reserved; conversion allows cycles and never fills these.
    cycle_error: str | None = None
    cycle_edge: CycleEdge | None = None


ErrorCode = Literal["NOT_FOUND", "VALIDATION", "CONFLICT", "AI_ERROR", "INTERNAL"]


class ServiceResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: Any = None
    error: str | None = None
    code: ErrorCode | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: ErrorCode) -> "ServiceResult":
        return cls(success=False, error=error, code=code)
