from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from mat_program.config import settings
from mat_program.database import build_engine, get_db, make_session_factory
from mat_program.main import app
from mat_program.models import Application, Base, Policy, RejectionReason, StoredBlob, User
from mat_program.models.base import utcnow
from mat_program.services.storage import storage

FPL = {1: 15060, 2: 20440, 3: 25820, 4: 31200, 5: 36580, 6: 41960, 7: 47340, 8: 52720}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'mat_test.db'}")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db] = _get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "docuseal_webhook_secret", "test-secret")
    return "test-secret"


@pytest.fixture
async def policies(session):
    rows = [Policy(key=f"fpl_{size}_person", value=amount) for size, amount in FPL.items()]
    rows.append(Policy(key="fpl_modifier_percentage", value=400))
    session.add_all(rows)
    await session.commit()


@pytest.fixture
def make_user(session):
    async def _make(**kwargs) -> User:
        kwargs.setdefault("email", f"user-{uuid.uuid4().hex[:8]}@example.com")
        kwargs.setdefault("first_name", "Test")
        kwargs.setdefault("last_name", "User")
        user = User(**kwargs)
        session.add(user)
        await session.commit()
        return user

    return _make


@pytest.fixture
async def admin(make_user):
    return await make_user(role="admin", first_name="Ada", last_name="Admin")


@pytest.fixture
async def constituent(make_user):
    return await make_user(first_name="Casey", last_name="Constituent")


@pytest.fixture
def make_blob(session):
    async def _make(data: bytes = b"%PDF-1.4 proof") -> StoredBlob:
        blob = await storage.store(session, data, filename="proof.pdf", content_type="application/pdf")
        await session.commit()
        return blob

    return _make


@pytest.fixture
def make_application(session):
    async def _make(user: User, **kwargs) -> Application:
        kwargs.setdefault("status", "in_progress")
        kwargs.setdefault("application_date", utcnow() - timedelta(days=1))
        kwargs.setdefault("household_size", 2)
        kwargs.setdefault("annual_income", 30000)
        kwargs.setdefault("medical_provider_name", "Dr. Rivera")
        kwargs.setdefault("medical_provider_phone", "410-555-0100")
        kwargs.setdefault("medical_provider_email", "rivera@clinic.example")
        application = Application(user_id=user.id, **kwargs)
        session.add(application)
        await session.commit()
        return application

    return _make


@pytest.fixture
def rejection_reason(session):
    async def _make(code: str, proof_type: str, body: str, locale: str = "en") -> RejectionReason:
        reason = RejectionReason(code=code, proof_type=proof_type, body=body, locale=locale)
        session.add(reason)
        await session.commit()
        return reason

    return _make
