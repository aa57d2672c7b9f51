import uuid

import pytest


@pytest.mark.anyio
async def test_error_responses_include_request_id_in_body_and_header(client):
    r = await client.get("/this-route-does-not-exist")
    assert r.status_code == 404

    payload = r.json()
    assert "request_id" in payload
    assert payload["request_id"], payload

    assert r.headers.get("x-request-id") == payload["request_id"]


@pytest.mark.anyio
async def test_caller_request_id_is_echoed(client):
    r = await client.get("/api/v1/applications/" + str(uuid.uuid4()), headers={"X-Request-ID": "req-123"})
    assert r.status_code == 404

    assert r.json()["request_id"] == "req-123"
    assert r.headers["x-request-id"] == "req-123"


@pytest.mark.anyio
async def test_validation_errors_use_the_envelope(client, admin):
    r = await client.post(
        "/api/v1/applications",
        json={"household_size": 0},
        headers={"X-User-ID": str(admin.id)},
    )
    assert r.status_code == 422

    payload = r.json()
    assert isinstance(payload["detail"], list)
    assert payload["request_id"]
