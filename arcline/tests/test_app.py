import pytest

from arcline.api.middleware import redact_path
from arcline.config import settings
from arcline.integrations import EmailClient, StorageClient


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["service"] == "arcline"
    assert "X-Request-Duration-Ms" in response.headers


@pytest.mark.asyncio
async def test_request_id_is_generated(client):
    first = await client.get("/health")
    second = await client.get("/health")
    assert len(first.headers["X-Request-Id"]) == 32
    assert first.headers["X-Request-Id"] != second.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_request_id_is_propagated(client):
    response = await client.get("/health", headers={"X-Request-Id": "edge-7f3a.1"})
    assert response.headers["X-Request-Id"] == "edge-7f3a.1"


@pytest.mark.asyncio
async def test_malformed_request_id_is_replaced(client):
    response = await client.get("/health", headers={"X-Request-Id": "bad id with spaces"})
    assert response.headers["X-Request-Id"] != "bad id with spaces"


def test_public_link_tokens_are_not_logged():
    assert redact_path("/api/v1/public/sign/abc123") == "/api/v1/public/sign/***"
    assert redact_path("/api/v1/public/proposals/abc123/continue") == "/api/v1/public/proposals/***"
    assert redact_path("/api/v1/invoices") == "/api/v1/invoices"


@pytest.mark.asyncio
async def test_health_reports_integration_modes(client, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_live_looking")
    monkeypatch.setattr(settings, "SENDGRID_API_KEY", "mock_sendgrid_key")
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "local")

    response = await client.get("/health")
    modes = {item["name"]: item["mode"] for item in response.json()["integrations"]}
    assert modes == {"sendgrid": "mock", "stripe": "live", "storage": "local"}


@pytest.mark.parametrize(
    "key,expected",
    [("mock_abc", True), ("", True), ("   ", True), ("SG.real-key", False)],
)
def test_placeholder_credentials_select_mock_mode(monkeypatch, key, expected):
    monkeypatch.setattr(settings, "SENDGRID_API_KEY", key)
    assert EmailClient().is_mock is expected


def test_storage_uses_s3_only_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "s3")
    monkeypatch.setattr(settings, "AWS_ACCESS_KEY_ID", "AKIAEXAMPLE")
    assert StorageClient().mode == "s3"

    monkeypatch.setattr(settings, "AWS_ACCESS_KEY_ID", "mock_aws")
    assert StorageClient().mode == "local"
