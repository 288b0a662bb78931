"""Initial schema: poam_items, audit_logs

Revision ID: 0001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the workflow tables."""

    # --- poam_items (keyed by id + tenant) ---
    op.create_table(
        "poam_items",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("weakness", sa.Text(), nullable=False, server_default=""),
        sa.Column("severity", sa.String(20), nullable=False, server_default="Moderate"),
        sa.Column("risk_level", sa.String(20), nullable=False, server_default="Moderate"),
        sa.Column("business_impact", sa.Text(), nullable=True),
        sa.Column("technical_impact", sa.Text(), nullable=True),
        sa.Column("proposed_solution", sa.Text(), nullable=True),
        sa.Column("implementation_plan", sa.Text(), nullable=True),
        sa.Column("affected_controls", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("compliance_frameworks", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("assigned_to", sa.String(64), nullable=True),
        sa.Column("approval_status", sa.String(32), nullable=False, server_default="Draft"),
        sa.Column("approval_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_approver", sa.String(64), nullable=True),
        sa.Column("submitted_by", sa.String(64), nullable=True),
        sa.Column("exception_type", sa.String(40), nullable=True),
        sa.Column("justification", sa.Text(), nullable=True),
        sa.Column("risk_acceptance_statement", sa.Text(), nullable=True),
        sa.Column("compensating_controls", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("approval_history", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("submitted_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_action_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("target_approval_date", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", "tenant_id", name="pk_poam_items"),
    )
    op.create_index("ix_poam_items_risk_level", "poam_items", ["risk_level"])
    op.create_index("ix_poam_items_approval_status", "poam_items", ["approval_status"])
    op.create_index("ix_poam_items_created_at", "poam_items", ["created_at"])
    op.create_index("ix_poam_items_tenant_status", "poam_items", ["tenant_id", "approval_status"])

    # --- audit_logs (insert-only) ---
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("actor_role", sa.String(40), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(100), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("severity", sa.String(20), nullable=False, server_default="info"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_resource_type", "audit_logs", ["resource_type"])
    op.create_index("ix_audit_logs_resource_id", "audit_logs", ["resource_id"])
    op.create_index("ix_audit_logs_severity", "audit_logs", ["severity"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    """Drop the workflow tables."""
    op.drop_table("audit_logs")
    op.drop_table("poam_items")
