import os
import uuid

import psycopg
import pytest

pytestmark = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL", "").startswith("postgresql"),
    reason="needs a PostgreSQL DATABASE_URL",
)


def _sync_dsn() -> str:
    return os.environ["DATABASE_URL"].replace("postgresql+asyncpg://", "postgresql://")


def _create_user(cur) -> uuid.UUID:
    user_id = uuid.uuid4()
    cur.execute(
        "INSERT INTO users (id, email, role) VALUES (%s, %s, %s)",
        (user_id, f"user-{user_id.hex[:8]}@example.com", "constituent"),
    )
    return user_id


def test_approved_application_requires_approved_proofs():
    with psycopg.connect(_sync_dsn()) as conn:
        with conn.cursor() as cur:
            user_id = _create_user(cur)
            with pytest.raises(psycopg.errors.CheckViolation):
                cur.execute(
                    """
                    INSERT INTO applications (id, user_id, status, income_proof_status)
                    VALUES (%s, %s, 'approved', 'approved')
                    """,
                    (uuid.uuid4(), user_id),
                )
        conn.rollback()


def test_approved_application_with_all_proofs_is_accepted():
    with psycopg.connect(_sync_dsn()) as conn:
        with conn.cursor() as cur:
            user_id = _create_user(cur)
            cur.execute(
                """
                INSERT INTO applications
                    (id, user_id, status, income_proof_status, residency_proof_status, medical_certification_status)
                VALUES (%s, %s, 'approved', 'approved', 'approved', 'approved')
                """,
                (uuid.uuid4(), user_id),
            )
        conn.rollback()


def test_guardian_cannot_be_own_dependent():
    with psycopg.connect(_sync_dsn()) as conn:
        with conn.cursor() as cur:
            user_id = _create_user(cur)
            with pytest.raises(psycopg.errors.CheckViolation):
                cur.execute(
                    """
                    INSERT INTO guardian_relationships (id, guardian_id, dependent_id, relationship_type)
                    VALUES (%s, %s, %s, 'Parent')
                    """,
                    (uuid.uuid4(), user_id, user_id),
                )
        conn.rollback()
