"""Points ledger core tables.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TRANSACTION_TYPES = ("purchase", "adjustment", "transfer", "redemption", "event")
PROMOTION_KINDS = ("automatic", "one_time")


def upgrade() -> None:
    uuid_type = sa.dialects.postgresql.UUID(as_uuid=True)

    op.create_table(
        "users",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("utorid", sa.String(length=16), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True, unique=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="regular"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("suspicious", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
        sa.CheckConstraint(
            "role IN ('regular','cashier','manager','superuser')", name="ck_users_role_valid"
        ),
    )
    op.create_index("ix_users_utorid", "users", ["utorid"], unique=True)

    op.create_table(
        "promotions",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("kind", sa.Enum(*PROMOTION_KINDS, name="promotion_kind"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("min_spending", sa.Numeric(12, 2), nullable=True),
        sa.Column("rate", sa.Numeric(8, 4), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "user_promotion_usage",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("user_id", uuid_type, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("promotion_id", uuid_type, sa.ForeignKey("promotions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "promotion_id", name="uq_user_promotion_usage_user_promotion"),
    )
    op.create_index("ix_user_promotion_usage_user_id", "user_promotion_usage", ["user_id"])

    op.create_table(
        "point_transactions",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("user_id", uuid_type, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.Enum(*TRANSACTION_TYPES, name="point_transaction_type"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("spent", sa.Numeric(12, 2), nullable=True),
        sa.Column("related_id", uuid_type, nullable=True),
        sa.Column("suspicious", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("remark", sa.String(), nullable=False, server_default=""),
        sa.Column("created_by_id", uuid_type, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("processed_by_id", uuid_type, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_point_transactions_user_id", "point_transactions", ["user_id"])
    op.create_index("ix_point_transactions_type", "point_transactions", ["type"])
    op.create_index("ix_point_transactions_related_id", "point_transactions", ["related_id"])

    op.create_table(
        "point_transaction_promotions",
        sa.Column(
            "transaction_id",
            uuid_type,
            sa.ForeignKey("point_transactions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("promotion_id", uuid_type, sa.ForeignKey("promotions.id"), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_point_transaction_promotions_promotion_id",
        "point_transaction_promotions",
        ["promotion_id"],
    )

    op.create_table(
        "events",
        sa.Column("id", uuid_type, primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("points_awarded <= total_points", name="ck_events_points_within_budget"),
        sa.CheckConstraint("points_awarded >= 0", name="ck_events_points_awarded_non_negative"),
    )

    for table, constraint in (
        ("event_guests", "uq_event_guests_event_user"),
        ("event_organizers", "uq_event_organizers_event_user"),
    ):
        op.create_table(
            table,
            sa.Column("id", uuid_type, primary_key=True),
            sa.Column("event_id", uuid_type, sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", uuid_type, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
            sa.UniqueConstraint("event_id", "user_id", name=constraint),
        )
        op.create_index(f"ix_{table}_event_id", table, ["event_id"])


def downgrade() -> None:
    op.drop_index("ix_event_organizers_event_id", table_name="event_organizers")
    op.drop_table("event_organizers")
    op.drop_index("ix_event_guests_event_id", table_name="event_guests")
    op.drop_table("event_guests")
    op.drop_table("events")
    op.drop_index("ix_point_transaction_promotions_promotion_id", table_name="point_transaction_promotions")
    op.drop_table("point_transaction_promotions")
    op.drop_index("ix_point_transactions_related_id", table_name="point_transactions")
    op.drop_index("ix_point_transactions_type", table_name="point_transactions")
    op.drop_index("ix_point_transactions_user_id", table_name="point_transactions")
    op.drop_table("point_transactions")
    op.drop_index("ix_user_promotion_usage_user_id", table_name="user_promotion_usage")
    op.drop_table("user_promotion_usage")
    op.drop_table("promotions")
    op.drop_index("ix_users_utorid", table_name="users")
    op.drop_table("users")
    sa.Enum(name="point_transaction_type").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="promotion_kind").drop(op.get_bind(), checkfirst=True)
