"""Development seed data.

Idempotent: safe to run multiple times.

Usage:
  DATABASE_URL=postgresql+asyncpg://... python -m mat_program.scripts.seed_dev_data

Kept *sync* (psycopg) so it can run in CI and one-off local dev without an
event loop.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass

import psycopg

from mat_program.models.user import SYSTEM_USER_EMAIL

ADMIN_EMAIL = "admin@mat.local"

DEFAULT_POLICIES = {
    "waiting_period_years": 3,
    "max_proof_rejections": 8,
    "fpl_modifier_percentage": 400,
    "fpl_1_person": 15060,
    "fpl_2_person": 20440,
    "fpl_3_person": 25820,
    "fpl_4_person": 31200,
    "fpl_5_person": 36580,
    "fpl_6_person": 41960,
    "fpl_7_person": 47340,
    "fpl_8_person": 52720,
}


@dataclass(frozen=True)
class SeedResult:
    admin_user_id: uuid.UUID
    system_user_id: uuid.UUID
    policy_count: int


def _sync_dsn(database_url: str) -> str:
    return database_url.replace("postgresql+asyncpg://", "postgresql://")


def _upsert_user(cur, *, email: str, role: str, first_name: str, last_name: str) -> uuid.UUID:
    cur.execute(
        """
        INSERT INTO users (id, email, role, first_name, last_name)
        VALUES (%s, %s, %s, %s, %s)
        ON CONFLICT (email) DO UPDATE SET role = EXCLUDED.role
        RETURNING id
        """,
        (uuid.uuid4(), email, role, first_name, last_name),
    )
    return cur.fetchone()[0]


def seed_dev_data(database_url: str) -> SeedResult:
    """Seed an admin, the system user and any missing program policies.

    Existing policy values are left alone so local tuning survives re-runs.
    """

    with psycopg.connect(_sync_dsn(database_url)) as conn:
        with conn.cursor() as cur:
            admin_id = _upsert_user(cur, email=ADMIN_EMAIL, role="admin", first_name="Dev", last_name="Admin")
            system_id = _upsert_user(cur, email=SYSTEM_USER_EMAIL, role="system", first_name="System", last_name="User")

            for key, value in DEFAULT_POLICIES.items():
                cur.execute(
                    "INSERT INTO policies (id, key, value) VALUES (%s, %s, %s) ON CONFLICT (key) DO NOTHING",
                    (uuid.uuid4(), key, value),
                )

            cur.execute("SELECT COUNT(*) FROM policies")
            policy_count = cur.fetchone()[0]

        conn.commit()

    return SeedResult(admin_user_id=admin_id, system_user_id=system_id, policy_count=policy_count)


def main() -> None:
    database_url = os.environ.get("DATABASE_URL") or os.environ.get("database_url")
    if not database_url:
        raise SystemExit("DATABASE_URL env var is required")

    result = seed_dev_data(database_url)
    print("Seeded dev data:")
    print(f"- admin_user_id: {result.admin_user_id}")
    print(f"- system_user_id: {result.system_user_id}")
    print(f"- policies: {result.policy_count}")


if __name__ == "__main__":
    main()
