from datetime import date, timedelta

import pytest

from arcline.config import settings


async def _create_proposal(client, headers, contact=None, **overrides):
    payload = {"title": "Kitchen remodel", "summary": "Full gut and rebuild", "total_cents": 4500000}
    if contact is not None:
        payload["recipient_contact_id"] = str(contact.id)
    payload.update(overrides)
    response = await client.post("/api/v1/proposals", headers=headers, json=payload)
    assert response.status_code == 201
    data = response.json()
    data["token"] = data["view_url"].rsplit("/", 1)[-1]
    return data


async def _attach_document(client, headers, proposal, signers):
    document = (
        await client.post(
            "/api/v1/documents",
            headers=headers,
            files={"file": ("proposal.pdf", b"%PDF-1.4 proposal", "application/pdf")},
            data={
                "title": "Proposal agreement",
                "source_entity_type": "proposal",
                "source_entity_id": proposal["id"],
            },
        )
    ).json()
    await client.post(
        f"/api/v1/documents/{document['id']}/signing-requests",
        headers=headers,
        json={"signers": signers},
    )
    return document


@pytest.mark.asyncio
async def test_create_proposal_returns_view_url(client, auth_headers, contact):
    proposal = await _create_proposal(client, auth_headers, contact)
    assert proposal["status"] == "draft"
    assert proposal["view_url"].startswith(f"{settings.APP_URL}/proposal/")
    assert len(proposal["token"]) == 64


@pytest.mark.asyncio
async def test_create_proposal_unknown_contact(client, auth_headers):
    response = await client.post(
        "/api/v1/proposals",
        headers=auth_headers,
        json={"title": "Deck", "recipient_contact_id": "00000000-0000-0000-0000-000000000000"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_public_proposal_view(client, auth_headers, contact):
    proposal = await _create_proposal(client, auth_headers, contact)

    response = await client.get(f"/api/v1/public/proposals/{proposal['token']}")
    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Kitchen remodel"
    assert data["recipient_name"] == "Casey Client"
    assert data["total_cents"] == 4500000


@pytest.mark.asyncio
async def test_public_proposal_unknown_token(client):
    response = await client.get(f"/api/v1/public/proposals/{'f' * 64}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_expired_proposal_is_gone(client, auth_headers, contact):
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    proposal = await _create_proposal(client, auth_headers, contact, valid_until=yesterday)

    response = await client.get(f"/api/v1/public/proposals/{proposal['token']}")
    assert response.status_code == 410


@pytest.mark.asyncio
async def test_send_proposal(client, auth_headers, contact):
    proposal = await _create_proposal(client, auth_headers, contact)
    response = await client.post(f"/api/v1/proposals/{proposal['id']}/send", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "sent"
    assert response.json()["sent_at"] is not None


@pytest.mark.asyncio
async def test_continue_redirects_recipient_to_signing(client, auth_headers, contact):
    proposal = await _create_proposal(client, auth_headers, contact)
    await _attach_document(
        client,
        auth_headers,
        proposal,
        [{"email": "Casey@Client.example", "name": "Casey Client", "sequence": 1}],
    )

    response = await client.get(f"/api/v1/public/proposals/{proposal['token']}/continue")
    assert response.status_code == 307
    location = response.headers["location"]
    assert location.startswith(f"{settings.APP_URL}/d/")

    signing = await client.get(f"/api/v1/public/sign/{location.rsplit('/', 1)[-1]}")
    assert signing.status_code == 200
    assert signing.json()["status"] == "viewed"


@pytest.mark.asyncio
async def test_continue_sends_back_when_next_signer_is_someone_else(client, auth_headers, contact):
    proposal = await _create_proposal(client, auth_headers, contact)
    await _attach_document(
        client,
        auth_headers,
        proposal,
        [
            {"email": "builder@arcline.example", "sequence": 1},
            {"email": "casey@client.example", "sequence": 2},
        ],
    )

    response = await client.get(f"/api/v1/public/proposals/{proposal['token']}/continue")
    assert response.status_code == 307
    assert response.headers["location"] == proposal["view_url"]


@pytest.mark.asyncio
async def test_continue_without_document_sends_back(client, auth_headers, contact):
    proposal = await _create_proposal(client, auth_headers, contact)

    response = await client.get(f"/api/v1/public/proposals/{proposal['token']}/continue")
    assert response.headers["location"] == proposal["view_url"]


@pytest.mark.asyncio
async def test_continue_unknown_token_sends_back(client):
    token = "a" * 64
    response = await client.get(f"/api/v1/public/proposals/{token}/continue")
    assert response.status_code == 307
    assert response.headers["location"] == f"{settings.APP_URL}/proposal/{token}"


@pytest.mark.asyncio
async def test_continue_after_acceptance_sends_back(client, auth_headers, contact):
    proposal = await _create_proposal(client, auth_headers, contact)
    await _attach_document(
        client, auth_headers, proposal, [{"email": "casey@client.example", "sequence": 1}]
    )

    location = (await client.get(f"/api/v1/public/proposals/{proposal['token']}/continue")).headers["location"]
    sign = await client.post(
        f"/api/v1/public/sign/{location.rsplit('/', 1)[-1]}",
        json={"signer_name": "Casey Client", "consent": True},
    )
    assert sign.json()["document_complete"] is True

    response = await client.get(f"/api/v1/public/proposals/{proposal['token']}/continue")
    assert response.headers["location"] == proposal["view_url"]

    # Accepted proposals stay viewable
    view = await client.get(f"/api/v1/public/proposals/{proposal['token']}")
    assert view.json()["status"] == "accepted"
