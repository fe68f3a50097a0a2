import json
import uuid

import pytest

from planner import crud
from planner.models import GameSystemCreate, SystemDetailCreate
from planner.synthesis.evolve import EvolveRequest, run_system_evolve


@pytest.fixture
def combat(session, project):
    system = crud.create_system(
        session=session,
        system_in=GameSystemCreate(project_id=project.id, system_slug="combat", name="Combat", purpose="Fights"),
    )
    crud.create_many_system_details(
        session=session,
        details_in=[
            SystemDetailCreate(game_system_id=system.id, name="Damage types", spec="Slash", sort_order=0),
            SystemDetailCreate(game_system_id=system.id, name="Health bar", detail_type="ui_hint", sort_order=1),
        ],
    )
    return system


EVOLVED_REPLY = json.dumps(
    {
        "extractedSystems": [
            {"name": "Melee Combat", "systemSlug": "melee", "purpose": "Close range fights", "version": "v0.2"}
        ],
        "extractedSystemDetails": [
            {"name": "Parry", "detailType": "reaction", "spec": "Timed block"},
            {"name": "Combo input", "detailType": "input", "spec": "Light, light, heavy"},
        ],
    }
)


@pytest.mark.asyncio
async def test_evolve_updates_system_and_replaces_details(session, combat, fake_provider):
    provider = fake_provider(EVOLVED_REPLY)

    result = await run_system_evolve(
        session, combat.id, EvolveRequest(provider_id="fake", user_message="Focus on melee"), provider=provider
    )

    assert result.success
    assert result.system.system_slug == "combat"
    assert result.system.name == "Melee Combat"
    assert result.system.version == "v0.2"
    assert [(d.name, d.detail_type, d.sort_order) for d in result.system.details] == [
        ("Parry", "mechanic", 0),
        ("Combo input", "input", 1),
    ]
    assert 'Keep systemSlug as "combat"' in provider.prompts[0]
    assert '"Damage types"' in provider.prompts[0]

    messages = crud.list_evolve_messages(session, combat.id)
    assert [m.role for m in messages] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_evolve_history_feeds_next_turn(session, combat, fake_provider):
    provider = fake_provider(EVOLVED_REPLY)
    await run_system_evolve(session, combat.id, EvolveRequest(user_message="Focus on melee"), provider=provider)

    await run_system_evolve(session, combat.id, EvolveRequest(user_message="Add ranged"), provider=provider)

    assert "User: Focus on melee" in provider.prompts[1]
    assert '"Parry"' in provider.prompts[1]


@pytest.mark.asyncio
async def test_reply_without_system_keeps_details(session, combat, fake_provider):
    result = await run_system_evolve(
        session,
        combat.id,
        EvolveRequest(user_message="Focus on melee"),
        provider=fake_provider('{"extractedSystems": [], "extractedSystemDetails": []}'),
    )

    assert not result.success
    assert result.code == "AI_ERROR"
    assert [d.name for d in crud.list_details_for_system(session, combat.id)] == ["Damage types", "Health bar"]
    assert crud.list_evolve_messages(session, combat.id) == []


@pytest.mark.asyncio
async def test_evolve_errors(session, combat, fake_provider):
    missing = await run_system_evolve(
        session, uuid.uuid4(), EvolveRequest(user_message="x"), provider=fake_provider(EVOLVED_REPLY)
    )
    unsupported = await run_system_evolve(session, combat.id, EvolveRequest(provider_id="nope", user_message="x"))

    assert missing.code == "NOT_FOUND"
    assert unsupported.code == "VALIDATION"
