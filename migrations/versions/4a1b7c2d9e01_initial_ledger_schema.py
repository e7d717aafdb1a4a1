"""initial ledger schema: users, blocks, graves, heirs, payments, settings

Revision ID: 4a1b7c2d9e01
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4a1b7c2d9e01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "block",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=1), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("total_capacity", sa.Integer(), nullable=False),
        sa.Column("annual_fee", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("total_capacity >= 0", name="ck_block_capacity"),
        sa.CheckConstraint("annual_fee >= 0", name="ck_block_annual_fee"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "grave",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("deceased_name", sa.String(length=160), nullable=False),
        sa.Column("block_id", sa.Integer(), nullable=False),
        sa.Column("number", sa.String(length=20), nullable=False),
        sa.Column("date_of_death", sa.Date(), nullable=False),
        sa.Column("burial_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["block_id"], ["block.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("block_id", "number", name="uq_grave_block_number"),
    )
    op.create_index("ix_grave_block_id", "grave", ["block_id"], unique=False)
    op.create_index("ix_grave_deceased_name", "grave", ["deceased_name"], unique=False)
    op.create_index("ix_grave_date_of_death", "grave", ["date_of_death"], unique=False)

    op.create_table(
        "heir",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("grave_id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=160), nullable=False),
        sa.Column("phone_number", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("relationship", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("address", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("order_number BETWEEN 1 AND 3", name="ck_heir_order_number"),
        sa.ForeignKeyConstraint(["grave_id"], ["grave.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("grave_id", "order_number", name="uq_heir_grave_order"),
    )
    op.create_index("ix_heir_grave_id", "heir", ["grave_id"], unique=False)
    op.create_index("ix_heir_full_name", "heir", ["full_name"], unique=False)

    op.create_table(
        "payment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("grave_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(length=30), nullable=False, server_default="cash"),
        sa.Column("paid_by", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        sa.ForeignKeyConstraint(["grave_id"], ["grave.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("grave_id", "year", name="uq_payment_grave_year"),
    )
    op.create_index("ix_payment_grave_id", "payment", ["grave_id"], unique=False)
    op.create_index("ix_payment_year", "payment", ["year"], unique=False)
    op.create_index("ix_payment_year_date", "payment", ["year", "payment_date"], unique=False)

    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("foundation_name", sa.String(length=160), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("active_year", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("id = 1", name="ck_settings_singleton"),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade():
    op.drop_table("settings")
    op.drop_index("ix_payment_year_date", table_name="payment")
    op.drop_index("ix_payment_year", table_name="payment")
    op.drop_index("ix_payment_grave_id", table_name="payment")
    op.drop_table("payment")
    op.drop_index("ix_heir_full_name", table_name="heir")
    op.drop_index("ix_heir_grave_id", table_name="heir")
    op.drop_table("heir")
    op.drop_index("ix_grave_date_of_death", table_name="grave")
    op.drop_index("ix_grave_deceased_name", table_name="grave")
    op.drop_index("ix_grave_block_id", table_name="grave")
    op.drop_table("grave")
    op.drop_table("block")
    op.drop_table("user_account")
