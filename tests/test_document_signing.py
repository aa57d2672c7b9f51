from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from mat_program.config import settings
from mat_program.models import AuditLog
from mat_program.models.base import utcnow
from mat_program.services import document_signing
from mat_program.services.document_signing import SubmissionService
from mat_program.services.docuseal_client import DocuSealClient, DocuSealError


class _FakeClient(DocuSealClient):
    def __init__(self, reply=None, error=None):
        super().__init__(base_url="https://docuseal.test", api_key="key")
        self.reply = reply or {"id": 4321, "submitters": [{"id": 99, "email": "rivera@clinic.example"}]}
        self.error = error
        self.payloads = []

    async def create_submission(self, payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.mark.anyio
async def test_request_sets_signing_fields_and_counters(session, constituent, admin, make_application):
    app = await make_application(constituent, medical_certification_request_count=1)
    client = _FakeClient()

    result = await SubmissionService(app, admin, client=client).call(session)
    await session.commit()

    assert result.ok, result.message
    assert app.document_signing_service == "docuseal"
    assert app.document_signing_submission_id == "4321"
    assert app.document_signing_submitter_id == "99"
    assert app.document_signing_status == "sent"
    assert app.document_signing_request_count == 1
    assert app.medical_certification_status == "requested"
    assert app.medical_certification_request_count == 2

    payload = client.payloads[0]
    assert payload["name"] == f"Medical Certification - App {app.id}"
    assert payload["submitters"] == [
        {"role": "Medical Provider", "email": "rivera@clinic.example", "name": "Dr. Rivera"}
    ]
    assert payload["send_email"] is True

    res = await session.execute(
        select(AuditLog).where(AuditLog.entity_id == app.id, AuditLog.action == "document_signing_request_sent")
    )
    assert res.scalar_one().meta["document_signing_submission_id"] == "4321"


@pytest.mark.anyio
async def test_template_id_is_sent_when_configured(session, constituent, admin, make_application, monkeypatch):
    monkeypatch.setattr(settings, "docuseal_template_id", 17)
    app = await make_application(constituent)
    client = _FakeClient()

    result = await SubmissionService(app, admin, client=client).call(session)

    assert result.ok, result.message
    assert client.payloads[0]["template_id"] == 17


@pytest.mark.anyio
async def test_cooldown_blocks_rapid_resend(session, constituent, admin, make_application):
    app = await make_application(constituent, document_signing_requested_at=utcnow() - timedelta(seconds=5))
    client = _FakeClient()

    result = await SubmissionService(app, admin, client=client).call(session)

    assert not result.ok
    assert result.message == "Request sent too recently. Please wait before sending another."
    assert client.payloads == []


@pytest.mark.anyio
async def test_resend_after_cooldown(session, constituent, admin, make_application):
    app = await make_application(
        constituent,
        document_signing_status="declined",
        document_signing_request_count=1,
        document_signing_requested_at=utcnow() - timedelta(minutes=5),
    )

    result = await SubmissionService(app, admin, client=_FakeClient()).call(session)

    assert result.ok, result.message
    assert app.document_signing_status == "sent"
    assert app.document_signing_request_count == 2


@pytest.mark.anyio
async def test_provider_email_and_actor_are_required(session, constituent, admin, make_application):
    app = await make_application(constituent, medical_provider_email=None)
    result = await SubmissionService(app, admin, client=_FakeClient()).call(session)
    assert result.message == "Medical provider email is required"

    app = await make_application(constituent, status="draft")
    result = await SubmissionService(app, None, client=_FakeClient()).call(session)
    assert result.message == "Actor is required"


@pytest.mark.anyio
async def test_provider_error_leaves_application_unchanged(session, constituent, admin, make_application):
    app = await make_application(constituent)
    client = _FakeClient(error=DocuSealError("DocuSeal API error: HTTP 500"))

    result = await SubmissionService(app, admin, client=client).call(session)

    assert not result.ok
    assert result.message == "Failed to create document signing request: DocuSeal API error: HTTP 500"
    assert app.document_signing_status == "not_sent"
    assert app.document_signing_request_count == 0


@pytest.mark.anyio
async def test_client_normalises_list_reply(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Auth-Token"] == "key"
        assert request.url.path == "/submissions"
        return httpx.Response(200, json=[{"id": 7, "submission_id": 55, "email": "rivera@clinic.example"}])

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx, "AsyncClient", lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs)
    )

    reply = await DocuSealClient(base_url="https://docuseal.test", api_key="key").create_submission({"name": "x"})

    assert reply["id"] == 55
    assert reply["submitters"][0]["id"] == 7


@pytest.mark.anyio
async def test_client_raises_on_http_error(monkeypatch):
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(lambda r: httpx.Response(422)), **kwargs),
    )

    with pytest.raises(DocuSealError):
        await DocuSealClient(base_url="https://docuseal.test", api_key="key").create_submission({})


@pytest.mark.anyio
async def test_client_requires_api_key():
    with pytest.raises(DocuSealError):
        await DocuSealClient(api_key="").create_submission({})


@pytest.mark.anyio
async def test_document_signing_endpoint(client, session, constituent, admin, make_application, monkeypatch):
    app = await make_application(constituent)
    monkeypatch.setattr(document_signing, "docuseal_client", _FakeClient())

    r = await client.post(f"/api/v1/applications/{app.id}/document_signing", headers={"X-User-ID": str(admin.id)})
    assert r.status_code == 200, r.text
    assert r.json()["document_signing_status"] == "sent"

    r = await client.post(f"/api/v1/applications/{app.id}/document_signing", headers={"X-User-ID": str(admin.id)})
    assert r.status_code == 409


@pytest.mark.anyio
async def test_closed_or_certified_applications_are_refused(session, constituent, admin, make_application):
    client = _FakeClient()
    approved = await make_application(
        constituent,
        status="approved",
        income_proof_status="approved",
        residency_proof_status="approved",
        medical_certification_status="approved",
    )
    archived = await make_application(constituent, status="archived")
    certified = await make_application(constituent, status="awaiting_documents", medical_certification_status="approved")

    result = await SubmissionService(approved, admin, client=client).call(session)
    assert result.message == "Cannot request medical certification for an application that is approved"
    assert approved.medical_certification_status == "approved"

    result = await SubmissionService(archived, admin, client=client).call(session)
    assert result.message == "Cannot request medical certification for an application that is archived"

    result = await SubmissionService(certified, admin, client=client).call(session)
    assert result.message == "Medical certification is already approved"

    assert client.payloads == []


@pytest.mark.anyio
async def test_document_signing_endpoint_refuses_approved_application(
    client, constituent, admin, make_application, monkeypatch
):
    app = await make_application(
        constituent,
        status="approved",
        income_proof_status="approved",
        residency_proof_status="approved",
        medical_certification_status="approved",
    )
    monkeypatch.setattr(document_signing, "docuseal_client", _FakeClient())

    r = await client.post(f"/api/v1/applications/{app.id}/document_signing", headers={"X-User-ID": str(admin.id)})
    assert r.status_code == 422
    assert "approved" in r.json()["detail"]
