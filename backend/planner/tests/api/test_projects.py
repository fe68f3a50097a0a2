import uuid


def test_health_check(client, api_prefix):
    response = client.get(f"{api_prefix}/utils/health-check/")

    assert response.status_code == 200
    assert response.json() is True


def test_create_and_read_project(client, api_prefix):
    created = client.post(f"{api_prefix}/projects/", json={"name": "Dungeon Guild", "genre": "roguelite"})

    assert created.status_code == 200
    body = created.json()
    assert body["status"] == "active"

    fetched = client.get(f"{api_prefix}/projects/{body['id']}")
    listed = client.get(f"{api_prefix}/projects/")

    assert fetched.json()["name"] == "Dungeon Guild"
    assert [p["id"] for p in listed.json()] == [body["id"]]


def test_project_validation_and_not_found(client, api_prefix):
    assert client.post(f"{api_prefix}/projects/", json={"name": ""}).status_code == 422
    assert client.get(f"{api_prefix}/projects/{uuid.uuid4()}").status_code == 404
