"""create agency hub schema

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610010001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _contact_columns() -> list[sa.Column]:
    return [
        sa.Column("company_email", sa.String(length=320), nullable=False),
        sa.Column("company_phone", sa.String(length=64), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("city", sa.String(length=128), nullable=False),
        sa.Column("zip_code", sa.String(length=32), nullable=False),
        sa.Column("state", sa.String(length=128), nullable=False),
        sa.Column("country", sa.String(length=128), nullable=False),
        sa.Column("goal", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("connect_account_id", sa.String(length=255), nullable=False, server_default=""),
    ]


def upgrade() -> None:
    op.create_table(
        "agency",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("agency_logo", sa.Text(), nullable=False),
        sa.Column("white_label", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_contact_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "sub_account",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("agency_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sub_account_logo", sa.Text(), nullable=False),
        *_contact_columns(),
        *_timestamps(),
        sa.ForeignKeyConstraint(["agency_id"], ["agency.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sub_account_agency", "sub_account", ["agency_id"], unique=False)

    op.create_table(
        "agency_user",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="SUBACCOUNT_USER"),
        sa.Column("agency_id", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["agency_id"], ["agency.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_agency_user_agency_role", "agency_user", ["agency_id", "role"], unique=False)

    op.create_table(
        "sub_account_permission",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("sub_account_id", sa.String(length=64), nullable=False),
        sa.Column("access", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.ForeignKeyConstraint(["email"], ["agency_user.email"], ondelete="CASCADE", onupdate="CASCADE"),
        sa.ForeignKeyConstraint(["sub_account_id"], ["sub_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", "sub_account_id", name="uq_sub_account_permission_email"),
    )

    op.create_table(
        "agency_invitation",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("agency_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="SUBACCOUNT_USER"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["agency_id"], ["agency.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "sidebar_option",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("icon", sa.String(length=64), nullable=False, server_default="info"),
        sa.Column("link", sa.Text(), nullable=False, server_default="#"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("agency_id", sa.String(length=64), nullable=True),
        sa.Column("sub_account_id", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["agency_id"], ["agency.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sub_account_id"], ["sub_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "notification",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("notification", sa.Text(), nullable=False),
        sa.Column("agency_id", sa.String(length=64), nullable=False),
        sa.Column("sub_account_id", sa.String(length=64), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["agency_id"], ["agency.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sub_account_id"], ["sub_account.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["agency_user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notification_agency_created", "notification", ["agency_id", "created_at"], unique=False)

    op.create_table(
        "pipeline",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sub_account_id", sa.String(length=64), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["sub_account_id"], ["sub_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pipeline_sub_account_id", "pipeline", ["sub_account_id"], unique=False)

    op.create_table(
        "pipeline_lane",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("pipeline_id", sa.String(length=64), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["pipeline_id"], ["pipeline.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pipeline_lane_order", "pipeline_lane", ["pipeline_id", "order"], unique=False)

    op.create_table(
        "contact",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("sub_account_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["sub_account_id"], ["sub_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contact_sub_account_id", "contact", ["sub_account_id"], unique=False)

    op.create_table(
        "pipeline_ticket",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("lane_id", sa.String(length=64), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("value", sa.Numeric(18, 2), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("customer_id", sa.String(length=64), nullable=True),
        sa.Column("assigned_user_id", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["lane_id"], ["pipeline_lane.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["contact.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_user_id"], ["agency_user.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pipeline_ticket_order", "pipeline_ticket", ["lane_id", "order"], unique=False)

    op.create_table(
        "pipeline_tag",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("color", sa.String(length=32), nullable=False),
        sa.Column("sub_account_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["sub_account_id"], ["sub_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sub_account_id", "name", name="uq_pipeline_tag_name"),
    )

    op.create_table(
        "pipeline_ticket_tag",
        sa.Column("ticket_id", sa.String(length=64), nullable=False),
        sa.Column("tag_id", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["pipeline_ticket.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tag_id"], ["pipeline_tag.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("ticket_id", "tag_id"),
    )

    op.create_table(
        "media",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("link", sa.Text(), nullable=False),
        sa.Column("sub_account_id", sa.String(length=64), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["sub_account_id"], ["sub_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("link"),
    )
    op.create_index("ix_media_sub_account_id", "media", ["sub_account_id"], unique=False)

    op.create_table(
        "funnel",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("subdomain", sa.String(length=128), nullable=True),
        sa.Column("favicon", sa.Text(), nullable=True),
        sa.Column("live_products", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("sub_account_id", sa.String(length=64), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["sub_account_id"], ["sub_account.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subdomain"),
    )
    op.create_index("ix_funnel_sub_account_id", "funnel", ["sub_account_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_funnel_sub_account_id", table_name="funnel")
    op.drop_table("funnel")
    op.drop_index("ix_media_sub_account_id", table_name="media")
    op.drop_table("media")
    op.drop_table("pipeline_ticket_tag")
    op.drop_table("pipeline_tag")
    op.drop_index("ix_pipeline_ticket_order", table_name="pipeline_ticket")
    op.drop_table("pipeline_ticket")
    op.drop_index("ix_contact_sub_account_id", table_name="contact")
    op.drop_table("contact")
    op.drop_index("ix_pipeline_lane_order", table_name="pipeline_lane")
    op.drop_table("pipeline_lane")
    op.drop_index("ix_pipeline_sub_account_id", table_name="pipeline")
    op.drop_table("pipeline")
    op.drop_index("ix_notification_agency_created", table_name="notification")
    op.drop_table("notification")
    op.drop_table("sidebar_option")
    op.drop_table("agency_invitation")
    op.drop_table("sub_account_permission")
    op.drop_index("ix_agency_user_agency_role", table_name="agency_user")
    op.drop_table("agency_user")
    op.drop_index("ix_sub_account_agency", table_name="sub_account")
    op.drop_table("sub_account")
    op.drop_table("agency")
