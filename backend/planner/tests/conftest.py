import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from planner import crud
from planner.models import BrainstormSessionCreate, ProjectCreate, SynthesizedOutputCreate
from planner.synthesis.providers import (
    AIProvider,
    CompletionResult,
    CompletionUsage,
    DoneChunk,
    TextChunk,
)


class FakeProvider(AIProvider):
    """Scripted provider: replays `chunks` (or `content` as one chunk) and optionally fails."""

    id = "fake"
    name = "Fake"

    def __init__(self, content: str = "", *, chunks: list[str] | None = None, error: Exception | None = None):
        super().__init__("fake-model")
        self.content = content
        self.chunks = chunks if chunks is not None else ([content] if content else [])
        self.error = error
        self.prompts: list[str] = []
        self.options = []

    async def complete(self, prompt, options=None):
        self.prompts.append(prompt)
        self.options.append(options)
        if self.error is not None:
            raise self.error
        return CompletionResult(
            content=self.content,
            usage=CompletionUsage(prompt_tokens=12, completion_tokens=34, total_tokens=46),
            finish_reason="stop",
        )

    async def stream(self, prompt, options=None):
        self.prompts.append(prompt)
        self.options.append(options)
        for text in self.chunks:
            yield TextChunk(text=text)
        if self.error is not None:
            raise self.error
        yield DoneChunk(usage=CompletionUsage(prompt_tokens=12, completion_tokens=34, total_tokens=46))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def project(session):
    return crud.create_project(
        session=session,
        project_in=ProjectCreate(name="Dungeon Guild", genre="roguelite", platform="pc"),
    )


@pytest.fixture
def other_project(session):
    return crud.create_project(session=session, project_in=ProjectCreate(name="Space Farm"))


@pytest.fixture
def brainstorm(session, project):
    return crud.create_brainstorm(
        session=session,
        brainstorm_in=BrainstormSessionCreate(
            title="Combat notes",
            content="Combat needs health and damage types",
            tags=["combat"],
        ),
        project_id=project.id,
    )


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def synthesized_output(session, project, brainstorm):
    return crud.create_synthesized_output(
        session=session,
        output_in=SynthesizedOutputCreate(
            project_id=project.id,
            brainstorm_session_id=brainstorm.id,
            title="Synthesis: Combat notes",
            content="{}",
            extracted_systems=[
                {"name": "Combat", "systemSlug": "combat", "purpose": "Fights", "dependencies": ["health"]},
                {"name": "Health", "systemSlug": "health", "purpose": "Hit points", "dependencies": []},
            ],
            extracted_system_details=[
                {"name": "Damage types", "detailType": "mechanic", "spec": "Slash, pierce, blunt", "targetSystemSlug": "combat"},
                {"name": "Health bar", "detailType": "ui_hint", "spec": "Red bar", "targetSystemSlug": "health"},
            ],
            suggested_systems=[{"name": "Armor", "systemSlug": "armor", "purpose": "Mitigation"}],
            suggested_system_details=[{"name": "Armor rating", "detailType": "mechanic", "spec": "Flat", "targetSystemSlug": "armor"}],
        ),
    )
