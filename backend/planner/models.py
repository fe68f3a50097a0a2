import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, JSON, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


# Generic message
class Message(SQLModel):
    message: str


# Projects

class ProjectBase(SQLModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None)
    genre: str | None = Field(default=None, max_length=255)
    platform: str | None = Field(default=None, max_length=255)
    status: str = Field(default="active", max_length=50)

class ProjectCreate(ProjectBase):
    pass

class Project(ProjectBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        sa_column_kwargs={"onupdate": get_datetime_utc},
    )
    brainstorms: list["BrainstormSession"] = Relationship(back_populates="project", cascade_delete=True)
    systems: list["GameSystem"] = Relationship(back_populates="project", cascade_delete=True)

class ProjectPublic(ProjectBase):
    id: uuid.UUID
    created_at: datetime | None = None
    updated_at: datetime | None = None


# Brainstorm sessions are immutable once created; edits create new sessions.

class BrainstormSessionBase(SQLModel):
    title: str = Field(min_length=1, max_length=255)
    source: str = Field(default="manual", max_length=50)  # manual, discord, upload
    content: str
    author: str | None = Field(default=None, max_length=255)
    tags: list[str] | None = Field(default=None, sa_type=JSON)
    source_thread_ids: list[str] | None = Field(default=None, sa_type=JSON)

class BrainstormSessionCreate(BrainstormSessionBase):
    pass

class BrainstormSession(BrainstormSessionBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    project_id: uuid.UUID = Field(
        foreign_key="project.id", nullable=False, ondelete="CASCADE", index=True
    )
    project: Project | None = Relationship(back_populates="brainstorms")

class BrainstormSessionPublic(BrainstormSessionBase):
    id: uuid.UUID
    project_id: uuid.UUID
    created_at: datetime | None = None


# Context snapshots are append-only; the newest by created_at is the prompt base.

class ContextSnapshot(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    project_id: uuid.UUID = Field(
        foreign_key="project.id", nullable=False, ondelete="CASCADE", index=True
    )
    content: dict = Field(default_factory=dict, sa_type=JSON)
    content_version: int = Field(default=1)
    trigger: str = Field(default="synthesis", max_length=50)  # synthesis, conversion, manual
    related_synthesis_output_id: uuid.UUID | None = Field(default=None)
    related_brainstorm_session_id: uuid.UUID | None = Field(default=None)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        index=True,
    )


# Synthesis output

class SynthesizedOutputBase(SQLModel):
    title: str = Field(max_length=255)
    content: str = Field(default="")  # raw model text
    extracted_systems: list = Field(default_factory=list, sa_type=JSON)
    extracted_system_details: list = Field(default_factory=list, sa_type=JSON)
    suggested_systems: list = Field(default_factory=list, sa_type=JSON)
    suggested_system_details: list = Field(default_factory=list, sa_type=JSON)
    status: str = Field(default="pending", max_length=50)  # pending, converted, failed
    ai_provider: str | None = Field(default=None, max_length=50)
    ai_model: str | None = Field(default=None, max_length=255)
    prompt_tokens: int | None = None
    completion_tokens: int | None = None

class SynthesizedOutputCreate(SynthesizedOutputBase):
    project_id: uuid.UUID
    brainstorm_session_id: uuid.UUID

class SynthesizedOutput(SynthesizedOutputBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        sa_column_kwargs={"onupdate": get_datetime_utc},
    )
    project_id: uuid.UUID = Field(
        foreign_key="project.id", nullable=False, ondelete="CASCADE", index=True
    )
    brainstorm_session_id: uuid.UUID = Field(
        foreign_key="brainstormsession.id", nullable=False, ondelete="CASCADE"
    )
    messages: list["SynthesisConversationMessage"] = Relationship(
        back_populates="output", cascade_delete=True
    )

class SynthesizedOutputPublic(SynthesizedOutputBase):
    id: uuid.UUID
    project_id: uuid.UUID
    brainstorm_session_id: uuid.UUID
    created_at: datetime | None = None
    updated_at: datetime | None = None


# Game systems

class GameSystemBase(SQLModel):
    system_slug: str = Field(max_length=255)
    name: str = Field(max_length=255)
    version: str = Field(default="v0.1", max_length=50)
    status: str = Field(default="draft", max_length=50)
    purpose: str | None = None
    current_state: str | None = None
    target_state: str | None = None
    core_mechanics: str | None = None
    inputs: str | None = None
    outputs: str | None = None
    mvp_criticality: str = Field(default="important", max_length=50)
    implementation_notes: str | None = None
    open_questions: str | None = None

class GameSystemCreate(GameSystemBase):
    project_id: uuid.UUID
    synthesized_output_id: uuid.UUID | None = None

class GameSystemUpdate(SQLModel):
    name: str | None = Field(default=None, max_length=255)
    version: str | None = Field(default=None, max_length=50)
    status: str | None = Field(default=None, max_length=50)
    purpose: str | None = None
    mvp_criticality: str | None = Field(default=None, max_length=50)

class GameSystem(GameSystemBase, table=True):
    __table_args__ = (UniqueConstraint("project_id", "system_slug"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        sa_column_kwargs={"onupdate": get_datetime_utc},
    )
    project_id: uuid.UUID = Field(
        foreign_key="project.id", nullable=False, ondelete="CASCADE", index=True
    )
    synthesized_output_id: uuid.UUID | None = Field(
        default=None, foreign_key="synthesizedoutput.id", ondelete="SET NULL"
    )
    project: Project | None = Relationship(back_populates="systems")
    details: list["SystemDetail"] = Relationship(back_populates="system", cascade_delete=True)
    evolve_messages: list["SystemEvolveMessage"] = Relationship(
        back_populates="system", cascade_delete=True
    )

class GameSystemPublic(GameSystemBase):
    id: uuid.UUID
    project_id: uuid.UUID
    synthesized_output_id: uuid.UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


DETAIL_TYPES = ("mechanic", "input", "output", "content", "ui_hint")

class SystemDetailBase(SQLModel):
    name: str = Field(max_length=255)
    detail_type: str = Field(default="mechanic", max_length=50)  # mechanic, input, output, content, ui_hint
    spec: str = Field(default="")
    sort_order: int = Field(default=0)

class SystemDetailCreate(SystemDetailBase):
    game_system_id: uuid.UUID
    synthesized_output_id: uuid.UUID | None = None

class SystemDetail(SystemDetailBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        sa_column_kwargs={"onupdate": get_datetime_utc},
    )
    game_system_id: uuid.UUID = Field(
        foreign_key="gamesystem.id", nullable=False, ondelete="CASCADE", index=True
    )
    synthesized_output_id: uuid.UUID | None = Field(
        default=None, foreign_key="synthesizedoutput.id", ondelete="SET NULL"
    )
    system: GameSystem | None = Relationship(back_populates="details")

class SystemDetailPublic(SystemDetailBase):
    id: uuid.UUID
    game_system_id: uuid.UUID
    synthesized_output_id: uuid.UUID | None = None

class GameSystemWithDetails(GameSystemPublic):
    details: list[SystemDetailPublic]


# Dependencies: several edges per pair are allowed when the type differs; cycles are allowed.

class DependencyBase(SQLModel):
    dependency_type: str = Field(default="requires", max_length=50)
    description: str | None = None

class DependencyCreate(DependencyBase):
    source_system_id: uuid.UUID
    target_system_id: uuid.UUID

class Dependency(DependencyBase, table=True):
    __table_args__ = (
        UniqueConstraint("source_system_id", "target_system_id", "dependency_type"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        sa_column_kwargs={"onupdate": get_datetime_utc},
    )
    source_system_id: uuid.UUID = Field(
        foreign_key="gamesystem.id", nullable=False, ondelete="CASCADE", index=True
    )
    target_system_id: uuid.UUID = Field(
        foreign_key="gamesystem.id", nullable=False, ondelete="CASCADE", index=True
    )

class DependencyPublic(DependencyBase):
    id: uuid.UUID
    source_system_id: uuid.UUID
    target_system_id: uuid.UUID
    created_at: datetime | None = None


# Conversation turns, ordered by created_at

class SynthesisConversationMessage(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    synthesized_output_id: uuid.UUID = Field(
        foreign_key="synthesizedoutput.id", nullable=False, ondelete="CASCADE", index=True
    )
    role: str = Field(max_length=20)  # user, assistant
    content: str
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    output: SynthesizedOutput | None = Relationship(back_populates="messages")

class SystemEvolveMessage(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    game_system_id: uuid.UUID = Field(
        foreign_key="gamesystem.id", nullable=False, ondelete="CASCADE", index=True
    )
    role: str = Field(max_length=20)  # user, assistant
    content: str
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    system: GameSystem | None = Relationship(back_populates="evolve_messages")

class ConversationMessagePublic(SQLModel):
    role: str
    content: str
    created_at: datetime | None = None
