import pytest


@pytest.mark.anyio
async def test_health_check(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_ping(client):
    r = await client.get("/api/v1/ping")
    assert r.status_code == 200
    assert r.json() == {"ping": "pong"}
