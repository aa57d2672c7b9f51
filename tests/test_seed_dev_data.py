import os

import psycopg
import pytest

from mat_program.scripts.seed_dev_data import ADMIN_EMAIL, seed_dev_data

pytestmark = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL", "").startswith("postgresql"),
    reason="needs a PostgreSQL DATABASE_URL",
)


def _sync_dsn() -> str:
    return os.environ["DATABASE_URL"].replace("postgresql+asyncpg://", "postgresql://")


def test_seed_dev_data_is_idempotent():
    database_url = os.environ["DATABASE_URL"]

    # Run twice to assert idempotency.
    r1 = seed_dev_data(database_url)
    r2 = seed_dev_data(database_url)

    assert r1.admin_user_id == r2.admin_user_id
    assert r1.system_user_id == r2.system_user_id
    assert r1.policy_count == r2.policy_count

    with psycopg.connect(_sync_dsn()) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT role FROM users WHERE email = %s", (ADMIN_EMAIL,))
            assert cur.fetchone()[0] == "admin"

            cur.execute("SELECT COUNT(*) FROM policies WHERE key LIKE 'fpl_%_person'")
            assert cur.fetchone()[0] == 8
