import uuid

import pytest


def _as(user):
    return {"X-User-ID": str(user.id)}


async def _upload(client, user, content=b"%PDF-1.4 upload", name="proof.pdf"):
    r = await client.post(
        "/api/v1/uploads",
        files={"file": (name, content, "application/pdf")},
        headers=_as(user),
    )
    assert r.status_code == 201, r.text
    return r.json()


@pytest.mark.anyio
async def test_requires_authentication(client, constituent, make_application):
    app = await make_application(constituent)

    r = await client.get(f"/api/v1/applications/{app.id}")
    assert r.status_code == 401

    r = await client.get(f"/api/v1/applications/{app.id}", headers={"X-User-ID": str(uuid.uuid4())})
    assert r.status_code == 401


@pytest.mark.anyio
async def test_owner_and_admin_can_read(client, constituent, admin, make_user, make_application):
    app = await make_application(constituent)
    stranger = await make_user()

    r = await client.get(f"/api/v1/applications/{app.id}", headers=_as(constituent))
    assert r.status_code == 200, r.text
    assert r.json()["id"] == str(app.id)

    r = await client.get(f"/api/v1/applications/{app.id}", headers=_as(admin))
    assert r.status_code == 200

    r = await client.get(f"/api/v1/applications/{app.id}", headers=_as(stranger))
    assert r.status_code == 404


@pytest.mark.anyio
async def test_upload_returns_signed_id(client, constituent):
    body = await _upload(client, constituent)

    assert body["signed_id"]
    assert body["filename"] == "proof.pdf"
    assert body["byte_size"] == len(b"%PDF-1.4 upload")


@pytest.mark.anyio
async def test_empty_upload_is_refused(client, constituent):
    r = await client.post(
        "/api/v1/uploads",
        files={"file": ("empty.pdf", b"", "application/pdf")},
        headers=_as(constituent),
    )
    assert r.status_code == 422


@pytest.mark.anyio
async def test_constituent_submits_proof(client, constituent, admin, make_application):
    app = await make_application(constituent)

    r = await client.post(
        f"/api/v1/applications/{app.id}/proofs/income",
        files={"file": ("paystub.pdf", b"%PDF pay", "application/pdf")},
        headers=_as(constituent),
    )
    assert r.status_code == 200, r.text
    assert r.json()["income_proof_status"] == "not_reviewed"
    assert r.json()["needs_review_since"] is not None


@pytest.mark.anyio
async def test_admin_attach_and_review_flow(client, constituent, admin, make_application):
    app = await make_application(constituent, status="awaiting_documents")

    upload = await _upload(client, admin)
    r = await client.post(
        f"/api/v1/applications/{app.id}/proofs/income/attach",
        json={"signed_id": upload["signed_id"], "status": "approved"},
        headers=_as(admin),
    )
    assert r.status_code == 200, r.text
    assert r.json()["income_proof_status"] == "approved"

    upload = await _upload(client, admin)
    r = await client.post(
        f"/api/v1/applications/{app.id}/proofs/residency/attach",
        json={"signed_id": upload["signed_id"]},
        headers=_as(admin),
    )
    assert r.status_code == 200, r.text
    assert r.json()["residency_proof_status"] == "not_reviewed"

    r = await client.post(
        f"/api/v1/applications/{app.id}/reviews",
        json={"proof_type": "residency", "status": "approved"},
        headers=_as(admin),
    )
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "approved"

    upload = await _upload(client, admin)
    r = await client.post(
        f"/api/v1/applications/{app.id}/proofs/medical_certification/attach",
        json={"signed_id": upload["signed_id"], "status": "approved"},
        headers=_as(admin),
    )
    assert r.status_code == 200, r.text
    assert r.json()["medical_certification_status"] == "approved"
    assert r.json()["status"] == "approved"

    r = await client.get(f"/api/v1/applications/{app.id}/status_changes", headers=_as(constituent))
    assert r.status_code == 200
    assert [c["to_status"] for c in r.json() if c["change_type"] == "status"] == ["approved"]

    r = await client.get(
        f"/api/v1/applications/{app.id}/audit_events",
        params={"action": "application_auto_approved"},
        headers=_as(admin),
    )
    assert r.status_code == 200
    assert len(r.json()) == 1
    assert r.json()[0]["metadata"]["auto_approval"] is True


@pytest.mark.anyio
async def test_attach_with_unknown_signed_id(client, constituent, admin, make_application):
    app = await make_application(constituent)

    r = await client.post(
        f"/api/v1/applications/{app.id}/proofs/income/attach",
        json={"signed_id": "does-not-exist", "status": "approved"},
        headers=_as(admin),
    )
    assert r.status_code == 422
    assert "Unknown storage reference" in r.json()["detail"]

    r = await client.post(
        f"/api/v1/applications/{app.id}/proofs/income/attach",
        json={"signed_id": "", "status": "approved"},
        headers=_as(admin),
    )
    assert r.status_code == 422
    assert isinstance(r.json()["detail"], list)


@pytest.mark.anyio
async def test_reject_endpoints(client, constituent, admin, make_application):
    app = await make_application(constituent, medical_certification_status="received")

    r = await client.post(
        f"/api/v1/applications/{app.id}/proofs/income/reject",
        json={"reason": "Document is cut off"},
        headers=_as(admin),
    )
    assert r.status_code == 200, r.text
    assert r.json()["income_proof_status"] == "rejected"
    assert r.json()["total_rejections"] == 1

    r = await client.post(
        f"/api/v1/applications/{app.id}/proofs/medical_certification/reject",
        json={"reason": "Not signed"},
        headers=_as(admin),
    )
    assert r.status_code == 200, r.text
    assert r.json()["medical_certification_status"] == "rejected"
    assert r.json()["medical_certification_rejection_reason"] == "Not signed"


@pytest.mark.anyio
async def test_admin_only_endpoints(client, constituent, make_application):
    app = await make_application(constituent)

    r = await client.post(
        f"/api/v1/applications/{app.id}/status",
        json={"status": "archived"},
        headers=_as(constituent),
    )
    assert r.status_code == 403

    r = await client.get(f"/api/v1/applications/{app.id}/audit_events", headers=_as(constituent))
    assert r.status_code == 403


@pytest.mark.anyio
async def test_status_endpoint(client, constituent, admin, make_application):
    app = await make_application(constituent)

    r = await client.post(
        f"/api/v1/applications/{app.id}/status",
        json={"status": "needs_information", "notes": "Signature missing"},
        headers=_as(admin),
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "needs_information"

    r = await client.post(
        f"/api/v1/applications/{app.id}/status",
        json={"status": "approved"},
        headers=_as(admin),
    )
    assert r.status_code == 422


@pytest.mark.anyio
async def test_unknown_application(client, admin):
    r = await client.get(f"/api/v1/applications/{uuid.uuid4()}", headers=_as(admin))
    assert r.status_code == 404

    r = await client.get("/api/v1/applications/not-a-uuid", headers=_as(admin))
    assert r.status_code == 404
