import json
import uuid

import pytest

from planner import crud
from planner.exceptions import ProviderError
from planner.synthesis.artifacts import ExtractedSystem, ExtractedSystemDetail
from planner.synthesis.refine import (
    RefineRequest,
    build_refine_prompt,
    clip_text,
    run_refine,
)

REFINED_REPLY = json.dumps(
    {
        "extractedSystems": [{"name": "Combat", "systemSlug": "combat", "purpose": "Fights and hit points"}],
        "extractedSystemDetails": [
            {"name": "Damage types", "detailType": "mechanic", "spec": "Slash", "targetSystemSlug": "combat"}
        ],
    }
)


def test_clip_text():
    assert clip_text("abcdef", 3) == "abc..."
    assert clip_text("abc", 3) == "abc"
    assert clip_text(None, 3) is None


def test_build_refine_prompt_sections():
    prompt = build_refine_prompt(
        systems=[ExtractedSystem.model_validate({"name": "Combat", "systemSlug": "combat", "purpose": "x" * 500})],
        details=[ExtractedSystemDetail.model_validate({"name": "Hit", "systemSlug": "combat", "spec": "y" * 500})],
        history=[("user", f"question {i}") for i in range(20)],
        user_message="Split combat",
        other_systems=[ExtractedSystem.model_validate({"name": "Health", "systemSlug": "health"})],
        snapshot_summary="Project context snapshot (now):\n{}",
        focused_system_slugs=["combat"],
    )

    assert "Previous conversation:" in prompt
    assert "question 19" in prompt
    assert "question 7\n" not in prompt
    assert "Other systems (for context):" in prompt
    assert "Refine ONLY these systems (by slug): combat" in prompt
    assert '"targetSystemSlug": "combat"' in prompt
    assert "x" * 201 not in prompt
    assert prompt.index("Current extraction (JSON):") < prompt.index("User request: Split combat")


@pytest.mark.asyncio
async def test_refine_replaces_extraction_and_records_turns(session, synthesized_output, fake_provider):
    provider = fake_provider(REFINED_REPLY)

    result = await run_refine(
        session,
        synthesized_output.id,
        RefineRequest(provider_id="fake", user_message="Fold health into combat"),
        provider=provider,
    )

    assert result.success
    assert [s.system_slug for s in result.extracted_systems] == ["combat"]
    assert "User request: Fold health into combat" in provider.prompts[0]
    assert "Previous conversation:" not in provider.prompts[0]

    session.refresh(synthesized_output)
    assert [s["systemSlug"] for s in synthesized_output.extracted_systems] == ["combat"]
    messages = crud.list_synthesis_messages(session, synthesized_output.id)
    assert [(m.role, m.content) for m in messages] == [
        ("user", "Fold health into combat"),
        ("assistant", REFINED_REPLY),
    ]


@pytest.mark.asyncio
async def test_refine_sends_stored_history(session, synthesized_output, fake_provider):
    provider = fake_provider(REFINED_REPLY)
    request = RefineRequest(user_message="first turn")
    await run_refine(session, synthesized_output.id, request, provider=provider)

    await run_refine(
        session,
        synthesized_output.id,
        RefineRequest(user_message="second turn", include_snapshot=True),
        provider=provider,
    )

    assert "User: first turn" in provider.prompts[1]
    assert "No project context snapshot available." in provider.prompts[1]


@pytest.mark.asyncio
async def test_unusable_reply_leaves_output_untouched(session, synthesized_output, fake_provider):
    result = await run_refine(
        session,
        synthesized_output.id,
        RefineRequest(user_message="anything"),
        provider=fake_provider("I am not sure what you mean."),
    )

    assert not result.success
    assert result.code == "AI_ERROR"
    assert result.raw_content == "I am not sure what you mean."
    session.refresh(synthesized_output)
    assert len(synthesized_output.extracted_systems) == 2
    assert crud.list_synthesis_messages(session, synthesized_output.id) == []


@pytest.mark.asyncio
async def test_refine_errors(session, synthesized_output, fake_provider):
    request = RefineRequest(user_message="anything")

    missing = await run_refine(session, uuid.uuid4(), request, provider=fake_provider(REFINED_REPLY))
    failed = await run_refine(
        session, synthesized_output.id, request, provider=fake_provider(error=ProviderError("fake", "down"))
    )
    blank = await run_refine(session, synthesized_output.id, request, provider=fake_provider("   "))

    assert missing.code == "NOT_FOUND"
    assert (failed.code, failed.error) == ("AI_ERROR", "down")
    assert (blank.code, blank.error) == ("AI_ERROR", "No response from AI")
