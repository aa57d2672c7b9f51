"""create policies and rejection reasons, seed program defaults

Revision ID: 004_policies_and_rejection_reasons
Revises: 003_reviews_audit_notifications
Create Date: 2026-10-18

"""

import uuid

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "004_policies_and_rejection_reasons"
down_revision = "003_reviews_audit_notifications"
branch_labels = None
depends_on = None


# 2024 federal poverty guidelines (48 contiguous states), by household size.
FPL = {1: 15060, 2: 20440, 3: 25820, 4: 31200, 5: 36580, 6: 41960, 7: 47340, 8: 52720}

DEFAULT_POLICIES = {
    "waiting_period_years": 3,
    "max_proof_rejections": 8,
    "fpl_modifier_percentage": 400,
    **{f"fpl_{size}_person": amount for size, amount in FPL.items()},
}

DEFAULT_REASONS = [
    ("missing_name", "income", "The document does not show your name."),
    ("expired", "income", "The document is older than one year."),
    ("missing_amount", "income", "The document does not show your income amount."),
    ("missing_name", "residency", "The document does not show your name."),
    ("wrong_state", "residency", "The document does not show a Maryland address."),
    ("expired", "residency", "The document is expired."),
    ("missing_signature", "medical_certification", "The certification form is not signed by the provider."),
    ("missing_information", "medical_certification", "The certification form is incomplete."),
]


def upgrade() -> None:
    policies = op.create_table(
        "policies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("key", name="uq_policies_key"),
    )

    reasons = op.create_table(
        "rejection_reasons",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=100), nullable=False),
        sa.Column("proof_type", sa.String(length=30), nullable=False),
        sa.Column("locale", sa.String(length=10), server_default=sa.text("'en'"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.UniqueConstraint("code", "proof_type", "locale", name="uq_rejection_reason_code_type_locale"),
    )

    op.bulk_insert(policies, [{"id": uuid.uuid4(), "key": k, "value": v} for k, v in DEFAULT_POLICIES.items()])
    op.bulk_insert(
        reasons,
        [
            {"id": uuid.uuid4(), "code": code, "proof_type": proof_type, "locale": "en", "body": body}
            for code, proof_type, body in DEFAULT_REASONS
        ],
    )


def downgrade() -> None:
    op.drop_table("rejection_reasons")
    op.drop_table("policies")
