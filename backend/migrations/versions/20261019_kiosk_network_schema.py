"""Kiosk network schema: locations, terminals, transactions, import batches

Revision ID: 20261019_kiosk_network
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_kiosk_network"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "locations",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(128), nullable=True),
        sa.Column("state", sa.String(32), nullable=True),
        sa.Column("zip", sa.String(16), nullable=True),
        sa.Column("rent_model", sa.String(16), nullable=False, server_default="FIXED"),
        sa.Column("base_rent", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    with op.batch_alter_table("locations", schema=None) as batch_op:
        batch_op.create_index("ix_locations_state", ["state"], unique=False)

    op.create_table(
        "terminals",
        sa.Column("sn", sa.String(128), nullable=False),
        sa.Column("atm_id", sa.String(128), nullable=False),
        sa.Column("location_id", sa.String(64), nullable=False),
        sa.Column("cash_on_hand", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_online", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="ONLINE"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.id"]),
        sa.PrimaryKeyConstraint("sn"),
    )

    with op.batch_alter_table("terminals", schema=None) as batch_op:
        batch_op.create_index("ix_terminals_location_id", ["location_id"], unique=False)
        batch_op.create_index("ix_terminals_status", ["status"], unique=False)
        batch_op.create_index("ix_terminals_location_status", ["location_id", "status"], unique=False)

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("terminal_sn", sa.String(128), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("type", sa.String(8), nullable=False),
        sa.Column("amount_cash", sa.Float(), nullable=False),
        sa.Column("amount_crypto", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("exchange_price", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("markup_percent", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("fixed_fee", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("gross_profit", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("source", sa.String(20), nullable=False, server_default="OTHER"),
        sa.Column("period", sa.String(20), nullable=False, server_default="UNKNOWN"),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    with op.batch_alter_table("transactions", schema=None) as batch_op:
        batch_op.create_index("ix_transactions_terminal_sn", ["terminal_sn"], unique=False)
        batch_op.create_index("ix_transactions_timestamp", ["timestamp"], unique=False)
        batch_op.create_index("ix_transactions_status", ["status"], unique=False)
        batch_op.create_index("ix_transactions_terminal_status", ["terminal_sn", "status"], unique=False)
        batch_op.create_index("ix_transactions_source_period", ["source", "period"], unique=False)

    op.create_table(
        "import_batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("period", sa.String(20), nullable=False),
        sa.Column("preset_code", sa.String(20), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("source_file_name", sa.String(255), nullable=True),
        sa.Column("source_file_format", sa.String(16), nullable=True),
        sa.Column("total_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("accepted_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("skipped_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("location_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("terminal_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("inserted_transactions", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("ignored_transactions", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("import_batches", schema=None) as batch_op:
        batch_op.create_index("ix_import_batches_source", ["source"], unique=False)
        batch_op.create_index("ix_import_batches_status", ["status"], unique=False)
        batch_op.create_index("ix_import_batches_source_period", ["source", "period"], unique=False)


def downgrade():
    with op.batch_alter_table("import_batches", schema=None) as batch_op:
        batch_op.drop_index("ix_import_batches_source_period")
        batch_op.drop_index("ix_import_batches_status")
        batch_op.drop_index("ix_import_batches_source")
    op.drop_table("import_batches")

    with op.batch_alter_table("transactions", schema=None) as batch_op:
        batch_op.drop_index("ix_transactions_source_period")
        batch_op.drop_index("ix_transactions_terminal_status")
        batch_op.drop_index("ix_transactions_status")
        batch_op.drop_index("ix_transactions_timestamp")
        batch_op.drop_index("ix_transactions_terminal_sn")
    op.drop_table("transactions")

    with op.batch_alter_table("terminals", schema=None) as batch_op:
        batch_op.drop_index("ix_terminals_location_status")
        batch_op.drop_index("ix_terminals_status")
        batch_op.drop_index("ix_terminals_location_id")
    op.drop_table("terminals")

    with op.batch_alter_table("locations", schema=None) as batch_op:
        batch_op.drop_index("ix_locations_state")
    op.drop_table("locations")
