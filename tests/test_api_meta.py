# tests/test_api_meta.py
import pytest


@pytest.mark.asyncio
async def test_health(client):
    # Tests the /health endpoint:
    # - Should return 200 with JSON {"status": "ok"}.
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_provider_status_reports_configuration(client, adapters):
    adapters["gemini"].api_key = ""
    r = await client.get("/health/providers")
    assert r.status_code == 200
    status = {p["name"]: p for p in r.json()}
    assert set(status) == {"openai", "claude", "gemini"}
    assert status["openai"]["configured"] is True
    assert status["gemini"]["configured"] is False
    assert "fake-key" not in r.text


@pytest.mark.asyncio
async def test_provider_connection_check(client, adapters):
    r = await client.get("/health/providers/openai")
    assert r.status_code == 200
    assert r.json() == {"success": True, "response": "Hello", "error": None}
    assert adapters["openai"].calls[0][1] == "openai-default"


@pytest.mark.asyncio
async def test_provider_connection_unknown(client):
    r = await client.get("/health/providers/nope")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_models(client):
    r = await client.get("/models")
    assert r.status_code == 200
    assert r.json() == {"models": []}
