import pytest


@pytest.mark.asyncio
async def test_create_project(client, auth_headers, contact):
    response = await client.post(
        "/api/v1/projects",
        headers=auth_headers,
        json={
            "name": "Maple Street Addition",
            "description": "Two-storey rear addition",
            "address": "88 Maple St, Springfield",
            "client_contact_id": str(contact.id),
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Maple Street Addition"
    assert data["status"] == "planning"
    assert data["client_contact_id"] == str(contact.id)


@pytest.mark.asyncio
async def test_create_project_unknown_contact(client, auth_headers):
    response = await client.post(
        "/api/v1/projects",
        headers=auth_headers,
        json={"name": "Ghost", "client_contact_id": "00000000-0000-0000-0000-000000000000"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_projects(client, auth_headers, project):
    await client.post("/api/v1/projects", headers=auth_headers, json={"name": "Garage"})

    response = await client.get("/api/v1/projects", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert len(data["items"]) == 2

    response = await client.get("/api/v1/projects", headers=auth_headers, params={"page_size": 1})
    data = response.json()
    assert len(data["items"]) == 1
    assert data["total_pages"] == 2


@pytest.mark.asyncio
async def test_get_project(client, auth_headers, project):
    response = await client.get(f"/api/v1/projects/{project.id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["name"] == "Oak Lane Remodel"


@pytest.mark.asyncio
async def test_members_see_org_projects(client, member_headers, project):
    response = await client.get(f"/api/v1/projects/{project.id}", headers=member_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_update_project(client, auth_headers, project):
    response = await client.patch(
        f"/api/v1/projects/{project.id}",
        headers=auth_headers,
        json={"name": "Oak Lane Kitchen", "address": "14 Oak Lane"},
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Oak Lane Kitchen"
    assert response.json()["address"] == "14 Oak Lane"


@pytest.mark.asyncio
async def test_project_status_transition(client, auth_headers, project):
    response = await client.patch(
        f"/api/v1/projects/{project.id}", headers=auth_headers, json={"status": "active"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "active"

    response = await client.patch(
        f"/api/v1/projects/{project.id}", headers=auth_headers, json={"status": "completed"}
    )
    assert response.json()["status"] == "completed"

    response = await client.get("/api/v1/projects", headers=auth_headers, params={"status": "completed"})
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_invalid_status_transition(client, auth_headers, project):
    response = await client.patch(
        f"/api/v1/projects/{project.id}", headers=auth_headers, json={"status": "completed"}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_project_not_found(client, auth_headers):
    response = await client.get(
        "/api/v1/projects/00000000-0000-0000-0000-000000000000", headers=auth_headers
    )
    assert response.status_code == 404
