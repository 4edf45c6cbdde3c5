"""Initial schema: users, reference data, import shipments, payments,
local trade and backup jobs.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-18

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _money(name: str, **kw) -> sa.Column:
    return sa.Column(name, sa.Numeric(15, 2), **kw)


def _rate(name: str, **kw) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 4), **kw)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ── Users / audit ────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("MANAGER", "ACCOUNTANT", "INVENTORY", "VIEWER", name="userrole"),
            server_default="VIEWER",
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("custom_permissions", sa.JSON()),
        sa.Column("created_by", sa.String(36)),
        *_timestamps(),
    )
    op.create_index("ix_users_username", "users", ["username"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("user_name", sa.String(200), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("entity_code", sa.String(100)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])

    # ── Reference data ───────────────────────────────────────

    op.create_table(
        "suppliers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("country", sa.String(100)),
        sa.Column("contact_name", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("email", sa.String(255)),
        sa.Column("address", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "shipping_companies",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("contact_name", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("email", sa.String(255)),
        sa.Column("website", sa.String(255)),
        sa.Column("address", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("rate_date", sa.Date(), nullable=False),
        sa.Column("from_currency", sa.String(3), nullable=False),
        sa.Column("to_currency", sa.String(3), nullable=False),
        _rate("rate_value", nullable=False),
        sa.Column("source", sa.String(100)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_exchange_rates_rate_date", "exchange_rates", ["rate_date"])

    # ── Import shipments ─────────────────────────────────────

    op.create_table(
        "shipments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("shipment_code", sa.String(50), nullable=False, unique=True),
        sa.Column("shipment_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(30), server_default="new"),
        sa.Column("last_step", sa.Integer(), server_default="1"),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        _rate("purchase_rmb_to_egp_rate", nullable=False),
        sa.Column("shipping_company_id", sa.String(36), sa.ForeignKey("shipping_companies.id")),
        sa.Column("customs_invoice_date", sa.Date()),
        _money("partial_discount_rmb", server_default="0"),
        sa.Column("discount_notes", sa.Text()),
        _money("purchase_cost_rmb", server_default="0"),
        _money("purchase_cost_egp", server_default="0"),
        _money("discount_egp", server_default="0"),
        _money("commission_cost_rmb", server_default="0"),
        _money("commission_cost_egp", server_default="0"),
        _money("shipping_cost_rmb", server_default="0"),
        _money("shipping_cost_egp", server_default="0"),
        _money("customs_cost_egp", server_default="0"),
        _money("takhreeg_cost_egp", server_default="0"),
        _money("missing_cost_egp", server_default="0"),
        _money("final_total_cost_egp", server_default="0"),
        _money("total_paid_egp", server_default="0"),
        _money("balance_egp", server_default="0"),
        sa.Column("last_payment_date", sa.DateTime()),
        sa.Column("received_at", sa.DateTime()),
        sa.Column("archived_at", sa.DateTime()),
        sa.Column("created_by", sa.String(36)),
        *_timestamps(),
    )
    op.create_index("ix_shipments_shipment_code", "shipments", ["shipment_code"])
    op.create_index("ix_shipments_status", "shipments", ["status"])
    op.create_index("ix_shipments_shipping_company_id", "shipments", ["shipping_company_id"])

    op.create_table(
        "shipment_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "shipment_id", sa.String(36),
            sa.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("line_no", sa.Integer(), server_default="1"),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.id")),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_type", sa.String(100)),
        sa.Column("country_of_origin", sa.String(100), server_default="China"),
        sa.Column("image_url", sa.String(500)),
        sa.Column("cartons_ctn", sa.Integer(), nullable=False),
        sa.Column("pieces_per_carton_pcs", sa.Integer(), nullable=False),
        sa.Column("total_pieces_cou", sa.Integer(), nullable=False),
        _rate("purchase_price_per_piece_rmb", nullable=False),
        _money("total_purchase_cost_rmb", nullable=False),
        _rate("customs_cost_per_piece_egp"),
        _money("total_customs_cost_egp", server_default="0"),
        _rate("takhreeg_cost_per_carton_egp"),
        _money("total_takhreeg_cost_egp", server_default="0"),
        sa.Column("missing_pieces", sa.Integer(), server_default="0"),
        _money("missing_cost_egp", server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_shipment_items_shipment_id", "shipment_items", ["shipment_id"])
    op.create_index("ix_shipment_items_supplier_id", "shipment_items", ["supplier_id"])

    op.create_table(
        "shipment_shipping_details",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "shipment_id", sa.String(36),
            sa.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("commission_rate_percent", sa.Numeric(6, 2), server_default="0"),
        sa.Column("shipping_area_sqm", sa.Numeric(12, 2), server_default="0"),
        _rate("shipping_cost_per_sqm_usd", server_default="0"),
        sa.Column("shipping_date", sa.Date()),
        _rate("rmb_to_egp_rate", nullable=False),
        _rate("usd_to_rmb_rate", nullable=False),
        sa.Column("rates_updated_at", sa.DateTime(), server_default=sa.func.now()),
        *_timestamps(),
    )

    op.create_table(
        "shipment_payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("payment_ref", sa.String(50), nullable=False, unique=True),
        sa.Column("shipment_id", sa.String(36), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("party_type", sa.String(30), server_default="supplier"),
        sa.Column("party_id", sa.String(36)),
        sa.Column("payment_date", sa.DateTime(), nullable=False),
        sa.Column("payment_currency", sa.String(3), nullable=False),
        _money("amount_original", nullable=False),
        _rate("exchange_rate_to_egp"),
        _money("amount_egp", nullable=False),
        sa.Column("cost_component", sa.String(30), nullable=False),
        sa.Column("payment_method", sa.String(30), server_default="cash"),
        sa.Column("cash_receiver_name", sa.String(255)),
        sa.Column("reference_number", sa.String(100)),
        sa.Column("note", sa.Text()),
        sa.Column("attachment_url", sa.String(500)),
        sa.Column("attachment_original_name", sa.String(255)),
        sa.Column("attachment_mime_type", sa.String(100)),
        sa.Column("attachment_size", sa.Integer()),
        sa.Column("attachment_uploaded_at", sa.DateTime()),
        sa.Column("created_by", sa.String(36)),
        *_timestamps(),
    )
    op.create_index("ix_shipment_payments_payment_ref", "shipment_payments", ["payment_ref"])
    op.create_index("ix_shipment_payments_shipment_id", "shipment_payments", ["shipment_id"])
    op.create_index("ix_shipment_payments_party_id", "shipment_payments", ["party_id"])
    op.create_index("ix_shipment_payments_payment_date", "shipment_payments", ["payment_date"])
    op.create_index("ix_shipment_payments_cost_component", "shipment_payments", ["cost_component"])

    op.create_table(
        "payment_allocations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "payment_id", sa.String(36),
            sa.ForeignKey("shipment_payments.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("shipment_id", sa.String(36), sa.ForeignKey("shipments.id"), nullable=False),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("component", sa.String(30), server_default="goods_cost"),
        sa.Column("currency", sa.String(3), server_default="RMB"),
        _money("allocated_amount", nullable=False),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_payment_allocations_payment_id", "payment_allocations", ["payment_id"])
    op.create_index("ix_payment_allocations_shipment_id", "payment_allocations", ["shipment_id"])
    op.create_index("ix_payment_allocations_supplier_id", "payment_allocations", ["supplier_id"])

    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source_type", sa.String(30), nullable=False),
        sa.Column("source_id", sa.String(36)),
        sa.Column("shipment_id", sa.String(36), sa.ForeignKey("shipments.id")),
        sa.Column("shipment_item_id", sa.String(36)),
        sa.Column("product_name", sa.String(255)),
        sa.Column("total_pieces_in", sa.Integer(), nullable=False),
        _rate("unit_cost_rmb"),
        _rate("unit_cost_egp", nullable=False),
        _money("total_cost_egp", nullable=False),
        sa.Column("movement_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_inventory_movements_source_type", "inventory_movements", ["source_type"])
    op.create_index("ix_inventory_movements_source_id", "inventory_movements", ["source_id"])
    op.create_index("ix_inventory_movements_shipment_id", "inventory_movements", ["shipment_id"])

    # ── Local trade ──────────────────────────────────────────

    op.create_table(
        "parties",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("phone", sa.String(50)),
        sa.Column("whatsapp", sa.String(50)),
        sa.Column("address", sa.Text()),
        sa.Column("payment_terms", sa.String(20), server_default="cash"),
        sa.Column("credit_limit_mode", sa.String(20), server_default="unlimited"),
        _money("credit_limit_amount_egp"),
        _money("opening_balance_egp", server_default="0"),
        sa.Column("opening_balance_type", sa.String(10), server_default="debit"),
        sa.Column("notes", sa.Text()),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_by", sa.String(36)),
        *_timestamps(),
    )
    op.create_index("ix_parties_name", "parties", ["name"])

    op.create_table(
        "party_seasons",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("party_id", sa.String(36), sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("season_number", sa.Integer(), server_default="1"),
        sa.Column("season_name", sa.String(100), nullable=False),
        sa.Column("is_current", sa.Boolean(), server_default=sa.true()),
        sa.Column("started_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime()),
        sa.Column("closed_by", sa.String(36)),
    )
    op.create_index("ix_party_seasons_party_id", "party_seasons", ["party_id"])

    op.create_table(
        "local_invoices",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("reference_number", sa.String(50), nullable=False, unique=True),
        sa.Column("invoice_kind", sa.String(20), nullable=False),
        sa.Column("party_id", sa.String(36), sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("season_id", sa.String(36), sa.ForeignKey("party_seasons.id")),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("total_cartons", sa.Integer(), server_default="0"),
        sa.Column("total_pieces", sa.Integer(), server_default="0"),
        _money("subtotal_egp", server_default="0"),
        _money("discount_egp", server_default="0"),
        _money("total_egp", server_default="0"),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        *_timestamps(),
    )
    op.create_index("ix_local_invoices_reference_number", "local_invoices", ["reference_number"])
    op.create_index("ix_local_invoices_invoice_kind", "local_invoices", ["invoice_kind"])
    op.create_index("ix_local_invoices_party_id", "local_invoices", ["party_id"])
    op.create_index("ix_local_invoices_season_id", "local_invoices", ["season_id"])

    op.create_table(
        "local_invoice_lines",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "invoice_id", sa.String(36),
            sa.ForeignKey("local_invoices.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("line_no", sa.Integer(), server_default="1"),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_type", sa.String(100)),
        sa.Column("cartons", sa.Integer(), server_default="0"),
        sa.Column("pieces_per_carton", sa.Integer(), server_default="0"),
        sa.Column("total_pieces", sa.Integer(), nullable=False),
        sa.Column("unit_mode", sa.String(10), server_default="piece"),
        _rate("unit_price_egp", nullable=False),
        _money("line_total_egp", nullable=False),
    )
    op.create_index("ix_local_invoice_lines_invoice_id", "local_invoice_lines", ["invoice_id"])

    op.create_table(
        "local_receipts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("invoice_id", sa.String(36), sa.ForeignKey("local_invoices.id"), nullable=False),
        sa.Column("receiving_status", sa.String(20), server_default="received"),
        sa.Column("received_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("received_by", sa.String(36)),
        sa.Column("notes", sa.Text()),
    )
    op.create_index("ix_local_receipts_invoice_id", "local_receipts", ["invoice_id"])

    op.create_table(
        "local_payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("party_id", sa.String(36), sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("season_id", sa.String(36), sa.ForeignKey("party_seasons.id")),
        sa.Column("payment_date", sa.Date(), nullable=False),
        _money("amount_egp", nullable=False),
        sa.Column("payment_method", sa.String(30), server_default="cash"),
        sa.Column("reference_number", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_local_payments_party_id", "local_payments", ["party_id"])
    op.create_index("ix_local_payments_season_id", "local_payments", ["season_id"])

    op.create_table(
        "return_cases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("party_id", sa.String(36), sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("invoice_id", sa.String(36), sa.ForeignKey("local_invoices.id")),
        sa.Column("season_id", sa.String(36), sa.ForeignKey("party_seasons.id")),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("description", sa.Text()),
        sa.Column("pieces", sa.Integer(), server_default="0"),
        sa.Column("cartons", sa.Integer(), server_default="0"),
        sa.Column("resolution", sa.String(30)),
        _money("margin_egp"),
        sa.Column("resolution_note", sa.Text()),
        sa.Column("resolved_at", sa.DateTime()),
        sa.Column("resolved_by", sa.String(36)),
        sa.Column("created_by", sa.String(36)),
        *_timestamps(),
    )
    op.create_index("ix_return_cases_party_id", "return_cases", ["party_id"])
    op.create_index("ix_return_cases_invoice_id", "return_cases", ["invoice_id"])
    op.create_index("ix_return_cases_season_id", "return_cases", ["season_id"])
    op.create_index("ix_return_cases_status", "return_cases", ["status"])

    op.create_table(
        "party_collections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("party_id", sa.String(36), sa.ForeignKey("parties.id"), nullable=False),
        sa.Column("collection_order", sa.Integer(), nullable=False),
        sa.Column("collection_date", sa.Date(), nullable=False),
        _money("amount_egp"),
        sa.Column("notes", sa.Text()),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("collected_at", sa.DateTime()),
        sa.Column("linked_payment_id", sa.String(36)),
        sa.Column("reminder_sent", sa.Boolean(), server_default=sa.false()),
        sa.Column("reminder_sent_at", sa.DateTime()),
        *_timestamps(),
        sa.UniqueConstraint("party_id", "collection_order", name="uq_party_collection_order"),
    )
    op.create_index("ix_party_collections_party_id", "party_collections", ["party_id"])
    op.create_index("ix_party_collections_collection_date", "party_collections", ["collection_date"])
    op.create_index("ix_party_collections_status", "party_collections", ["status"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36)),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text()),
        sa.Column("reference_type", sa.String(50)),
        sa.Column("reference_id", sa.String(36)),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_reference_id", "notifications", ["reference_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    # ── Operations ───────────────────────────────────────────

    op.create_table(
        "backup_jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("job_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("progress", sa.Integer(), server_default="0"),
        sa.Column("backup_path", sa.String(500)),
        sa.Column("output_path", sa.String(500)),
        sa.Column("file_size", sa.Integer()),
        sa.Column("manifest", sa.JSON()),
        sa.Column("error", sa.Text()),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime()),
        sa.Column("completed_at", sa.DateTime()),
    )
    op.create_index("ix_backup_jobs_status", "backup_jobs", ["status"])


def downgrade() -> None:
    op.drop_table("backup_jobs")
    op.drop_table("notifications")
    op.drop_table("party_collections")
    op.drop_table("return_cases")
    op.drop_table("local_payments")
    op.drop_table("local_receipts")
    op.drop_table("local_invoice_lines")
    op.drop_table("local_invoices")
    op.drop_table("party_seasons")
    op.drop_table("parties")
    op.drop_table("inventory_movements")
    op.drop_table("payment_allocations")
    op.drop_table("shipment_payments")
    op.drop_table("shipment_shipping_details")
    op.drop_table("shipment_items")
    op.drop_table("shipments")
    op.drop_table("exchange_rates")
    op.drop_table("shipping_companies")
    op.drop_table("suppliers")
    op.drop_table("activity_logs")
    op.drop_table("users")
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
