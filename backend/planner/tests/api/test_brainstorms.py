import uuid


def test_create_and_list_brainstorms(client, api_prefix, project):
    url = f"{api_prefix}/projects/{project.id}/brainstorms/"

    created = client.post(url, json={"title": "Loot", "content": "Chests drop gear", "tags": ["loot"]})
    listed = client.get(url)

    assert created.status_code == 200
    assert created.json()["source"] == "manual"
    assert created.json()["project_id"] == str(project.id)
    assert [b["title"] for b in listed.json()] == ["Loot"]


def test_brainstorm_for_unknown_project(client, api_prefix):
    response = client.post(
        f"{api_prefix}/projects/{uuid.uuid4()}/brainstorms/", json={"title": "Loot", "content": "x"}
    )

    assert response.status_code == 404


def test_upload_text_file(client, api_prefix, project):
    response = client.post(
        f"{api_prefix}/projects/{project.id}/brainstorms/upload",
        data={"author": "sam"},
        files={"file": ("notes.md", b"# Crafting\nCombine items", "text/markdown")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "notes.md"
    assert body["source"] == "upload"
    assert body["author"] == "sam"
    assert body["content"].startswith("# Crafting")


def test_upload_rejects_unsupported_and_empty_files(client, api_prefix, project):
    url = f"{api_prefix}/projects/{project.id}/brainstorms/upload"

    image = client.post(url, files={"file": ("map.png", b"\x89PNG", "image/png")})
    empty = client.post(url, files={"file": ("blank.txt", b"   ", "text/plain")})
    binary = client.post(url, files={"file": ("bad.txt", b"\xff\xfe\xfa", "text/plain")})
    broken_pdf = client.post(url, files={"file": ("notes.pdf", b"not a pdf", "application/pdf")})

    assert image.status_code == 400
    assert empty.status_code == 400
    assert binary.status_code == 400
    assert broken_pdf.status_code == 400
