"""Initial stock ledger schema: materials, BOM, user inventories, transfers, invoices, sequences

Revision ID: 20261019_initial_stock_ledger
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# Quantity columns hold integer thousandths (stockledger.models.types.Quantity).

# revision identifiers, used by Alembic.
revision = "20261019_initial_stock_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False)
        )
    return columns


def _numbered_document(table_name: str):
    op.create_table(
        table_name,
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("number", sa.String(length=64), nullable=False),
        sa.Column("financial_year", sa.String(length=9), nullable=False),
        sa.Column("counterparty", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("number"),
        sqlite_autoincrement=True,
    )
    op.create_index(f"ix_{table_name}_financial_year", table_name, ["financial_year"], unique=False)


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "raw_materials",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.BigInteger(), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 0", name="ck_raw_materials_quantity_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.BigInteger(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("cost_price", sa.Numeric(12, 2), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_name", "products", ["name"], unique=False)

    op.create_table(
        "product_structures",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("raw_material_id", sa.Integer(), nullable=False),
        sa.Column("quantity_required", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("quantity_required > 0", name="ck_product_structures_quantity_positive"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["raw_material_id"], ["raw_materials.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "raw_material_id", name="uq_product_structures_product_material"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_product_structures_product_id", "product_structures", ["product_id"], unique=False)
    op.create_index("ix_product_structures_raw_material_id", "product_structures", ["raw_material_id"], unique=False)

    op.create_table(
        "user_inventories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("raw_material_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.BigInteger(), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 0", name="ck_user_inventories_quantity_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["raw_material_id"], ["raw_materials.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "raw_material_id", name="uq_user_inventories_user_material"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_user_inventories_user_id", "user_inventories", ["user_id"], unique=False)
    op.create_index("ix_user_inventories_raw_material_id", "user_inventories", ["raw_material_id"], unique=False)

    op.create_table(
        "manufacturing_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity_produced", sa.BigInteger(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_manufacturing_runs_user_id", "manufacturing_runs", ["user_id"], unique=False)
    op.create_index("ix_manufacturing_runs_product_id", "manufacturing_runs", ["product_id"], unique=False)

    op.create_table(
        "raw_material_transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("raw_material_id", sa.Integer(), nullable=False),
        sa.Column("quantity_issued", sa.BigInteger(), nullable=False),
        sa.Column("returned_quantity", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("issued_by_user_id", sa.Integer(), nullable=True),
        sa.Column("manufacturing_run_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity_issued > 0", name="ck_raw_material_transfers_quantity_positive"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["raw_material_id"], ["raw_materials.id"]),
        sa.ForeignKeyConstraint(["issued_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["manufacturing_run_id"], ["manufacturing_runs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_raw_material_transfers_user_id", "raw_material_transfers", ["user_id"], unique=False)
    op.create_index("ix_raw_material_transfers_raw_material_id", "raw_material_transfers", ["raw_material_id"], unique=False)
    op.create_index("ix_raw_material_transfers_status", "raw_material_transfers", ["status"], unique=False)
    op.create_index("ix_raw_material_transfers_manufacturing_run_id", "raw_material_transfers", ["manufacturing_run_id"], unique=False)

    op.create_table(
        "product_transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity_sent", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("received_by", sa.String(length=255), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity_sent > 0", name="ck_product_transfers_quantity_positive"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_product_transfers_user_id", "product_transfers", ["user_id"], unique=False)
    op.create_index("ix_product_transfers_product_id", "product_transfers", ["product_id"], unique=False)
    op.create_index("ix_product_transfers_status", "product_transfers", ["status"], unique=False)

    op.create_table(
        "raw_material_consumptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("raw_material_id", sa.Integer(), nullable=False),
        sa.Column("product_transfer_id", sa.Integer(), nullable=False),
        sa.Column("quantity_used", sa.BigInteger(), nullable=False),
        sa.Column("product_transfer_quantity", sa.BigInteger(), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["raw_material_id"], ["raw_materials.id"]),
        sa.ForeignKeyConstraint(["product_transfer_id"], ["product_transfers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_raw_material_consumptions_user_id", "raw_material_consumptions", ["user_id"], unique=False)
    op.create_index("ix_raw_material_consumptions_product_id", "raw_material_consumptions", ["product_id"], unique=False)
    op.create_index("ix_raw_material_consumptions_raw_material_id", "raw_material_consumptions", ["raw_material_id"], unique=False)
    op.create_index("ix_raw_material_consumptions_product_transfer_id", "raw_material_consumptions", ["product_transfer_id"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("balance_type", sa.String(length=16), nullable=False),
        sa.Column("balance_id", sa.Integer(), nullable=False),
        sa.Column("raw_material_id", sa.Integer(), nullable=True),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("quantity_delta", sa.BigInteger(), nullable=False),
        sa.Column("quantity_after", sa.BigInteger(), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("reference_type", sa.String(length=32), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["raw_material_id"], ["raw_materials.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_movements_balance", "stock_movements", ["balance_type", "balance_id"], unique=False)
    op.create_index("ix_stock_movements_raw_material_id", "stock_movements", ["raw_material_id"], unique=False)
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"], unique=False)
    op.create_index("ix_stock_movements_user_id", "stock_movements", ["user_id"], unique=False)
    op.create_index("ix_stock_movements_event_type", "stock_movements", ["event_type"], unique=False)
    op.create_index("ix_stock_movements_occurred_at", "stock_movements", ["occurred_at"], unique=False)

    op.create_table(
        "sequence_counters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("domain", sa.String(length=32), nullable=False),
        sa.Column("financial_year", sa.String(length=9), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("last_number >= 0", name="ck_sequence_counters_last_number_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("domain", "financial_year", name="uq_sequence_counters_domain_year"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sequence_counters_domain", "sequence_counters", ["domain"], unique=False)

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("advance_paid", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_due", sa.Numeric(12, 2), nullable=False),
        sa.Column("stock_reserved", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_invoices_status", "invoices", ["status"], unique=False)

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.BigInteger(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"], unique=False)
    op.create_index("ix_invoice_items_product_id", "invoice_items", ["product_id"], unique=False)

    for table_name in ("bills", "payments", "vendor_payments", "vendor_credit_notes"):
        _numbered_document(table_name)


def downgrade():
    for table_name in ("vendor_credit_notes", "vendor_payments", "payments", "bills"):
        op.drop_index(f"ix_{table_name}_financial_year", table_name=table_name)
        op.drop_table(table_name)

    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_table("sequence_counters")
    op.drop_table("stock_movements")
    op.drop_table("raw_material_consumptions")
    op.drop_table("product_transfers")
    op.drop_table("raw_material_transfers")
    op.drop_table("manufacturing_runs")
    op.drop_table("user_inventories")
    op.drop_table("product_structures")
    op.drop_table("products")
    op.drop_table("raw_materials")
    op.drop_table("users")
