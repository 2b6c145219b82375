"""Initial schema — directory, rules, requests, escalation tickets, activity.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Directory
    op.create_table(
        "org_members",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("job_role_id", sa.String(64), nullable=True),
        sa.Column("expertise_score", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_org_members_user"),
    )
    op.create_index("idx_org_members_role", "org_members", ["organization_id", "role"])

    op.create_table(
        "team_memberships",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.String(64), nullable=False),
        sa.Column("team_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_memberships_user"),
    )
    op.create_index(
        "idx_team_memberships_team", "team_memberships", ["organization_id", "team_id"]
    )

    # Routing rules
    op.create_table(
        "assignment_rules",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("request_type_id", sa.Integer, nullable=False),
        sa.Column("rule_name", sa.String(200), nullable=False),
        sa.Column("priority_order", sa.Integer, nullable=False),
        sa.Column("rule_type", sa.String(30), nullable=False),
        sa.Column(
            "assignment_strategy", sa.String(30), nullable=False, server_default="first_available"
        ),
        sa.Column("conditions", sa.JSON, nullable=False),
        sa.Column("escalation_rules", sa.JSON, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("request_type_id", "priority_order", name="uq_rules_priority"),
    )

    # Requests
    op.create_table(
        "requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("organization_id", sa.String(64), nullable=False),
        sa.Column("request_type_id", sa.Integer, nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("form_data", sa.JSON, nullable=False),
        sa.Column("requested_by", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("assigned_to", sa.JSON, nullable=False),
        sa.Column("matched_rule_id", sa.Integer, nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_by", sa.String(64), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_notes", sa.Text, nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_requests_org_status", "requests", ["organization_id", "status"])
    op.create_index("idx_requests_accepted_by", "requests", ["accepted_by"])

    # Escalation tickets
    op.create_table(
        "escalation_tickets",
        sa.Column(
            "request_id",
            sa.Integer,
            sa.ForeignKey("requests.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("rule_id", sa.Integer, nullable=False),
        sa.Column("current_level", sa.Integer, nullable=False, server_default="0"),
        sa.Column("deadline_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("target_roles", sa.JSON, nullable=False),
        sa.Column("exhausted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("claimed_by", sa.String(200), nullable=True),
    )
    op.create_index("idx_escalation_due", "escalation_tickets", ["exhausted", "deadline_at"])

    # Activity timeline
    op.create_table(
        "activity_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "request_id",
            sa.Integer,
            sa.ForeignKey("requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("author_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("update_type", sa.String(30), nullable=True),
        sa.Column("title", sa.String(300), nullable=True),
        sa.Column("content", sa.Text, nullable=True),
        sa.Column("old_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=True),
        sa.Column("is_internal", sa.Boolean, nullable=False, server_default=sa.false()),
    )
    op.create_index("idx_activity_request", "activity_entries", ["request_id", "created_at"])


def downgrade() -> None:
    op.drop_table("activity_entries")
    op.drop_table("escalation_tickets")
    op.drop_table("requests")
    op.drop_table("assignment_rules")
    op.drop_table("team_memberships")
    op.drop_table("org_members")
