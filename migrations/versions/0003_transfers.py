"""transfers, items, history and per-day numbering

Revision ID: 0003_transfers
Revises: 0002_stock_ledger
Create Date: 2026-02-05 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0003_transfers"
down_revision = "0002_stock_ledger"
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def upgrade() -> None:
    op.create_table(
        "transfers",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_number", sa.String(length=40), nullable=False),
        sa.Column("from_warehouse_id", GUID(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("to_warehouse_id", GUID(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("transfer_date", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", GUID(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("approved_by_id", GUID(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("completed_by_id", GUID(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("source_ledger_applied", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("destination_ledger_applied", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("from_warehouse_id <> to_warehouse_id", name="ck_transfer_distinct_warehouses"),
    )
    op.create_index("ix_transfers_transfer_number", "transfers", ["transfer_number"], unique=True)
    op.create_index("ix_transfers_from_warehouse_id", "transfers", ["from_warehouse_id"])
    op.create_index("ix_transfers_to_warehouse_id", "transfers", ["to_warehouse_id"])
    op.create_index("ix_transfers_status", "transfers", ["status"])
    op.create_index("ix_transfers_status_from", "transfers", ["status", "from_warehouse_id"])

    op.create_table(
        "transfer_items",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_id", GUID(), sa.ForeignKey("transfers.id"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("material_type_id", GUID(), sa.ForeignKey("material_types.id"), nullable=False),
        sa.Column("thickness", sa.String(length=50), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("wood_status", sa.String(length=20), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_transfer_item_quantity_positive"),
    )
    op.create_index("ix_transfer_items_transfer_id", "transfer_items", ["transfer_id"])

    op.create_table(
        "transfer_history",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_id", GUID(), sa.ForeignKey("transfers.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=20), nullable=False),
        sa.Column("actor_id", GUID(), nullable=True),
        sa.Column("actor_name", sa.String(length=255), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_transfer_history_transfer_id", "transfer_history", ["transfer_id"])

    op.create_table(
        "transfer_sequences",
        sa.Column("day", sa.Date(), primary_key=True),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("transfer_sequences")
    op.drop_index("ix_transfer_history_transfer_id", table_name="transfer_history")
    op.drop_table("transfer_history")
    op.drop_index("ix_transfer_items_transfer_id", table_name="transfer_items")
    op.drop_table("transfer_items")
    op.drop_index("ix_transfers_status_from", table_name="transfers")
    op.drop_index("ix_transfers_status", table_name="transfers")
    op.drop_index("ix_transfers_to_warehouse_id", table_name="transfers")
    op.drop_index("ix_transfers_from_warehouse_id", table_name="transfers")
    op.drop_index("ix_transfers_transfer_number", table_name="transfers")
    op.drop_table("transfers")
