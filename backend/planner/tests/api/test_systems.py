import json
import uuid
from unittest.mock import patch

import pytest

from planner import crud
from planner.models import GameSystemCreate


@pytest.fixture
def combat(session, project):
    return crud.create_system(
        session=session,
        system_in=GameSystemCreate(project_id=project.id, system_slug="combat", name="Combat"),
    )


def test_list_systems(client, api_prefix, project, combat):
    response = client.get(f"{api_prefix}/projects/{project.id}/systems/")

    assert response.status_code == 200
    assert [s["system_slug"] for s in response.json()] == ["combat"]


def test_evolve_system(client, api_prefix, project, combat, fake_provider):
    reply = json.dumps(
        {
            "extractedSystems": [{"name": "Combat", "systemSlug": "combat", "purpose": "Turn based fights"}],
            "extractedSystemDetails": [{"name": "Initiative", "detailType": "mechanic", "spec": "Speed order"}],
        }
    )
    url = f"{api_prefix}/projects/{project.id}/systems/{combat.id}/evolve"

    with patch("planner.synthesis.providers.get_provider", return_value=fake_provider(reply)):
        response = client.post(url, json={"user_message": "Make it turn based"})
    messages = client.get(f"{url}/messages")

    assert response.status_code == 200
    assert response.json()["system"]["purpose"] == "Turn based fights"
    assert [d["name"] for d in response.json()["system"]["details"]] == ["Initiative"]
    assert [m["content"] for m in messages.json()][0] == "Make it turn based"


def test_evolve_unknown_or_foreign_system(client, api_prefix, project, other_project, combat):
    foreign = client.post(
        f"{api_prefix}/projects/{other_project.id}/systems/{combat.id}/evolve", json={"user_message": "x"}
    )
    missing = client.get(f"{api_prefix}/projects/{project.id}/systems/{uuid.uuid4()}/evolve/messages")

    assert foreign.status_code == 404
    assert missing.status_code == 404
