"""stock ledger, adjustment journal, movement log

Revision ID: 0002_stock_ledger
Revises: 0001_identity_directories
Create Date: 2026-02-03 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_stock_ledger"
down_revision = "0001_identity_directories"
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


_COUNTERS = ("not_dried", "under_drying", "dried", "damaged", "in_transit_out", "in_transit_in")


def upgrade() -> None:
    op.create_table(
        "stock_records",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("warehouse_id", GUID(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("material_type_id", GUID(), sa.ForeignKey("material_types.id"), nullable=False),
        sa.Column("thickness", sa.String(length=50), nullable=False),
        *[sa.Column(name, sa.Integer(), nullable=False, server_default="0") for name in _COUNTERS],
        sa.Column("minimum_stock_level", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("warehouse_id", "material_type_id", "thickness", name="uq_stock_record_key"),
        *[sa.CheckConstraint(f"{name} >= 0", name=f"ck_stock_{name}_non_negative") for name in _COUNTERS],
    )
    op.create_index("ix_stock_records_warehouse_id", "stock_records", ["warehouse_id"])
    op.create_index("ix_stock_records_material_type_id", "stock_records", ["material_type_id"])

    op.create_table(
        "stock_adjustments",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("warehouse_id", GUID(), nullable=False),
        sa.Column("material_type_id", GUID(), nullable=False),
        sa.Column("thickness", sa.String(length=50), nullable=False),
        sa.Column("wood_status", sa.String(length=20), nullable=False),
        sa.Column("quantity_before", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=30), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("adjusted_by_id", GUID(), nullable=False),
        sa.Column("adjusted_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_stock_adjustments_warehouse_id", "stock_adjustments", ["warehouse_id"])
    op.create_index("ix_stock_adjustments_adjusted_at", "stock_adjustments", ["adjusted_at"])

    op.create_table(
        "stock_movements",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("movement_type", sa.String(length=30), nullable=False),
        sa.Column("warehouse_id", GUID(), nullable=False),
        sa.Column("material_type_id", GUID(), nullable=False),
        sa.Column("thickness", sa.String(length=50), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("from_bucket", sa.String(length=20), nullable=True),
        sa.Column("to_bucket", sa.String(length=20), nullable=True),
        sa.Column("reference_type", sa.String(length=20), nullable=False),
        sa.Column("reference_id", GUID(), nullable=False),
        sa.Column("reference_number", sa.String(length=40), nullable=True),
        sa.Column("actor_id", GUID(), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_stock_movements_movement_type", "stock_movements", ["movement_type"])
    op.create_index("ix_stock_movements_warehouse_id", "stock_movements", ["warehouse_id"])
    op.create_index("ix_stock_movements_created_at", "stock_movements", ["created_at"])
    op.create_index(
        "ix_stock_movements_key",
        "stock_movements",
        ["warehouse_id", "material_type_id", "thickness"],
    )


def downgrade() -> None:
    op.drop_index("ix_stock_movements_key", table_name="stock_movements")
    op.drop_index("ix_stock_movements_created_at", table_name="stock_movements")
    op.drop_index("ix_stock_movements_warehouse_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_movement_type", table_name="stock_movements")
    op.drop_table("stock_movements")
    op.drop_index("ix_stock_adjustments_adjusted_at", table_name="stock_adjustments")
    op.drop_index("ix_stock_adjustments_warehouse_id", table_name="stock_adjustments")
    op.drop_table("stock_adjustments")
    op.drop_index("ix_stock_records_material_type_id", table_name="stock_records")
    op.drop_index("ix_stock_records_warehouse_id", table_name="stock_records")
    op.drop_table("stock_records")
