import json
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import select

from planner.exceptions import ProviderError
from planner.models import SynthesizedOutput
from planner.synthesis.orchestrator import SynthesisRunRequest, run_synthesis_stream
from planner.synthesis.snapshots import get_latest_snapshot

MODEL_REPLY = json.dumps(
    {
        "extractedSystems": [
            {"name": "Combat", "systemSlug": "combat", "purpose": "Fights", "dependencies": ["health"]},
            {"name": "Health", "systemSlug": "health", "purpose": "Hit points", "dependencies": []},
        ],
        "extractedSystemDetails": [
            {"name": "Damage types", "detailType": "mechanic", "spec": "Slash", "targetSystemSlug": "combat"},
        ],
    }
)


async def _collect(stream):
    return [(event["event"], json.loads(event["data"])) async for event in stream]


@pytest.mark.asyncio
async def test_stream_saves_output_and_snapshot(session, project, brainstorm, fake_provider):
    provider = fake_provider(MODEL_REPLY, chunks=[MODEL_REPLY[:40], MODEL_REPLY[40:]])

    events = await _collect(
        run_synthesis_stream(
            session,
            SynthesisRunRequest(brainstorm_session_id=brainstorm.id, provider_id="fake"),
            provider=provider,
        )
    )

    assert [name for name, _ in events] == ["prompt", "chunk", "chunk", "done"]
    assert "Combat needs health and damage types" in events[0][1]["prompt"]
    assert provider.prompts == [events[0][1]["prompt"]]
    assert "".join(data["text"] for name, data in events if name == "chunk") == MODEL_REPLY

    done = events[-1][1]
    assert done["parseMode"] == "json"
    assert done["promptTokens"] == 12
    assert done["completionTokens"] == 34
    assert [s["systemSlug"] for s in done["extractedSystems"]] == ["combat", "health"]
    assert done["suggestedSystems"] == []

    output = session.get(SynthesizedOutput, uuid.UUID(done["outputId"]))
    assert output.status == "pending"
    assert output.content == MODEL_REPLY
    assert output.ai_provider == "fake"
    assert len(output.extracted_system_details) == 1

    snapshot = get_latest_snapshot(session, project.id)
    assert snapshot.trigger == "synthesis"
    assert snapshot.related_synthesis_output_id == output.id
    assert snapshot.related_brainstorm_session_id == brainstorm.id


@pytest.mark.asyncio
async def test_unparseable_reply_is_still_saved(session, project, brainstorm, fake_provider):
    events = await _collect(
        run_synthesis_stream(
            session,
            SynthesisRunRequest(brainstorm_session_id=brainstorm.id),
            provider=fake_provider("I could not find any systems."),
        )
    )

    name, done = events[-1]
    assert name == "done"
    assert done["parseMode"] == "none"
    assert done["extractedSystems"] == []
    assert done["rawContent"] == "I could not find any systems."


@pytest.mark.asyncio
async def test_provider_failure_saves_failed_output(session, project, brainstorm, fake_provider):
    provider = fake_provider(chunks=['{"extractedSys'], error=ProviderError("fake", "rate limited", 429))

    events = await _collect(
        run_synthesis_stream(
            session, SynthesisRunRequest(brainstorm_session_id=brainstorm.id), provider=provider
        )
    )

    assert [name for name, _ in events] == ["prompt", "chunk", "error"]
    error = events[-1][1]
    assert error["message"] == "rate limited"
    assert error["rawContent"] == '{"extractedSys'

    output = session.get(SynthesizedOutput, uuid.UUID(error["outputId"]))
    assert output.status == "failed"
    assert output.content == '{"extractedSys'
    assert get_latest_snapshot(session, project.id) is None


@pytest.mark.asyncio
async def test_missing_brainstorm_yields_error(session, fake_provider):
    events = await _collect(
        run_synthesis_stream(
            session,
            SynthesisRunRequest(brainstorm_session_id=uuid.uuid4()),
            provider=fake_provider(MODEL_REPLY),
        )
    )

    assert events == [("error", {"message": "Brainstorm session not found"})]


@pytest.mark.asyncio
async def test_unknown_provider_yields_error(session, brainstorm):
    events = await _collect(
        run_synthesis_stream(
            session, SynthesisRunRequest(brainstorm_session_id=brainstorm.id, provider_id="llama")
        )
    )

    assert len(events) == 1
    assert events[0][0] == "error"
    assert "llama" in events[0][1]["message"]


@pytest.mark.asyncio
async def test_closing_stream_early_saves_nothing(session, project, brainstorm, fake_provider):
    stream = run_synthesis_stream(
        session,
        SynthesisRunRequest(brainstorm_session_id=brainstorm.id),
        provider=fake_provider(MODEL_REPLY, chunks=["a", "b", "c"]),
    )

    assert (await stream.__anext__())["event"] == "prompt"
    assert (await stream.__anext__())["event"] == "chunk"
    await stream.aclose()

    assert session.exec(select(SynthesizedOutput)).all() == []
    assert get_latest_snapshot(session, project.id) is None


@pytest.mark.asyncio
async def test_provider_resolved_by_id_is_closed(session, brainstorm, fake_provider):
    provider = fake_provider(MODEL_REPLY)
    provider.aclose = AsyncMock()

    with patch("planner.synthesis.providers.get_provider", return_value=provider) as resolve:
        events = await _collect(
            run_synthesis_stream(
                session, SynthesisRunRequest(brainstorm_session_id=brainstorm.id, provider_id="anthropic")
            )
        )

    assert events[-1][0] == "done"
    resolve.assert_called_once_with("anthropic")
    provider.aclose.assert_awaited_once()
