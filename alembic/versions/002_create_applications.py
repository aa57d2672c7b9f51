"""create applications and status change trail

Revision ID: 002_create_applications
Revises: 001_create_users_and_blobs
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "002_create_applications"
down_revision = "001_create_users_and_blobs"
branch_labels = None
depends_on = None


def upgrade() -> None:
    uuid = postgresql.UUID(as_uuid=True)

    op.create_table(
        "applications",
        sa.Column("id", uuid, primary_key=True, nullable=False),
        sa.Column("user_id", uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("managing_guardian_id", uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(length=30), server_default=sa.text("'draft'"), nullable=False),
        sa.Column("submission_method", sa.String(length=30), server_default=sa.text("'online'"), nullable=False),
        sa.Column("application_date", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("household_size", sa.Integer(), nullable=True),
        sa.Column("annual_income", sa.Integer(), nullable=True),
        sa.Column("maryland_resident", sa.Boolean(), nullable=True),
        sa.Column("self_certify_disability", sa.Boolean(), nullable=True),
        sa.Column("medical_provider_name", sa.String(length=255), nullable=True),
        sa.Column("medical_provider_phone", sa.String(length=50), nullable=True),
        sa.Column("medical_provider_fax", sa.String(length=50), nullable=True),
        sa.Column("medical_provider_email", sa.String(length=255), nullable=True),
        # proofs
        sa.Column("income_proof_status", sa.String(length=20), server_default=sa.text("'not_reviewed'"), nullable=False),
        sa.Column("residency_proof_status", sa.String(length=20), server_default=sa.text("'not_reviewed'"), nullable=False),
        sa.Column("income_proof_blob_id", uuid, sa.ForeignKey("stored_blobs.id", ondelete="SET NULL"), nullable=True),
        sa.Column("residency_proof_blob_id", uuid, sa.ForeignKey("stored_blobs.id", ondelete="SET NULL"), nullable=True),
        sa.Column("income_verified_by_id", uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("total_rejections", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("needs_review_since", sa.DateTime(timezone=True), nullable=True),
        # medical certification
        sa.Column("medical_certification_status", sa.String(length=20), server_default=sa.text("'not_requested'"), nullable=False),
        sa.Column("medical_certification_blob_id", uuid, sa.ForeignKey("stored_blobs.id", ondelete="SET NULL"), nullable=True),
        sa.Column("medical_certification_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("medical_certification_request_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("medical_certification_verified_by_id", uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("medical_certification_rejection_reason", sa.Text(), nullable=True),
        sa.Column("medical_certification_rejection_reason_code", sa.String(length=100), nullable=True),
        # document signing
        sa.Column("document_signing_status", sa.String(length=20), server_default=sa.text("'not_sent'"), nullable=False),
        sa.Column("document_signing_service", sa.String(length=50), nullable=True),
        sa.Column("document_signing_submission_id", sa.String(length=100), nullable=True),
        sa.Column("document_signing_submitter_id", sa.String(length=100), nullable=True),
        sa.Column("document_signing_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("document_signing_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("document_signing_request_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("document_signing_audit_url", sa.Text(), nullable=True),
        sa.Column("document_signing_document_url", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.CheckConstraint(
            "status <> 'approved' OR (income_proof_status = 'approved' AND residency_proof_status = 'approved' "
            "AND medical_certification_status = 'approved')",
            name="chk_applications_approved_requires_proofs",
        ),
    )
    op.create_index(
        "idx_applications_signing_submission",
        "applications",
        ["document_signing_service", "document_signing_submission_id"],
        unique=False,
    )
    op.create_index("ix_applications_document_signing_submission_id", "applications", ["document_signing_submission_id"])
    # Waiting-period lookups: latest application per user.
    op.create_index("idx_applications_user_date", "applications", ["user_id", sa.text("application_date DESC")])

    op.create_table(
        "application_status_changes",
        sa.Column("id", uuid, primary_key=True, nullable=False),
        sa.Column("application_id", uuid, sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("change_type", sa.String(length=30), server_default=sa.text("'status'"), nullable=False),
        sa.Column("from_status", sa.String(length=30), nullable=False),
        sa.Column("to_status", sa.String(length=30), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )
    op.create_index("ix_application_status_changes_application_id", "application_status_changes", ["application_id"])


def downgrade() -> None:
    op.drop_index("ix_application_status_changes_application_id", table_name="application_status_changes")
    op.drop_table("application_status_changes")
    op.drop_index("idx_applications_user_date", table_name="applications")
    op.drop_index("ix_applications_document_signing_submission_id", table_name="applications")
    op.drop_index("idx_applications_signing_submission", table_name="applications")
    op.drop_table("applications")
