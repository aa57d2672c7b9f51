"""create proof reviews, audit logs and notifications

Revision ID: 003_reviews_audit_notifications
Revises: 002_create_applications
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "003_reviews_audit_notifications"
down_revision = "002_create_applications"
branch_labels = None
depends_on = None


def upgrade() -> None:
    uuid = postgresql.UUID(as_uuid=True)

    op.create_table(
        "proof_reviews",
        sa.Column("id", uuid, primary_key=True, nullable=False),
        sa.Column("application_id", uuid, sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False),
        sa.Column("admin_id", uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("proof_type", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejection_reason_code", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("submission_method", sa.String(length=30), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )
    op.create_index("idx_proof_reviews_app_type_status", "proof_reviews", ["application_id", "proof_type", "status"])
    op.create_index("ix_proof_reviews_rejection_reason_code", "proof_reviews", ["rejection_reason_code"])

    op.create_table(
        "audit_logs",
        sa.Column("id", uuid, primary_key=True, nullable=False),
        sa.Column("actor_id", uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("entity_type", sa.String(length=50), nullable=True),
        sa.Column("entity_id", uuid, nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])

    op.create_table(
        "notifications",
        sa.Column("id", uuid, primary_key=True, nullable=False),
        sa.Column("recipient_id", uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_id", uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("notifiable_type", sa.String(length=50), nullable=True),
        sa.Column("notifiable_id", uuid, nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("channel", sa.String(length=20), server_default=sa.text("'email'"), nullable=False),
        sa.Column("delivery_status", sa.String(length=20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )
    op.create_index("idx_notifications_notifiable", "notifications", ["notifiable_type", "notifiable_id"])
    # Twilio status callbacks look notifications up by fax SID.
    op.create_index("idx_notifications_fax_sid", "notifications", [sa.text("(metadata->>'fax_sid')")])


def downgrade() -> None:
    op.drop_index("idx_notifications_fax_sid", table_name="notifications")
    op.drop_index("idx_notifications_notifiable", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("idx_audit_action", table_name="audit_logs")
    op.drop_index("idx_audit_entity", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_proof_reviews_rejection_reason_code", table_name="proof_reviews")
    op.drop_index("idx_proof_reviews_app_type_status", table_name="proof_reviews")
    op.drop_table("proof_reviews")
