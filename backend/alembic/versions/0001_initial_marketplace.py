"""Initial schema: batches, journey events, listings, orders.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-18

Quantity columns hold whole grams (see harvestchain.models.types).

Run with:
    cd backend && alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Batches ──────────────────────────────────────────────

    op.create_table(
        "batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_code", sa.String(64), nullable=False),
        sa.Column("crop_name", sa.String(100), nullable=False),
        sa.Column("quantity_initial", sa.BigInteger(), nullable=False),
        sa.Column("harvest_date", sa.Date(), nullable=False),
        sa.Column("origin_location", sa.String(255), nullable=False),
        sa.Column("producer_id", sa.String(36), nullable=False),
        sa.Column("fertilizers", sa.JSON()),
        sa.Column("pesticides", sa.JSON()),
        sa.Column("image_url", sa.String(512)),
        sa.Column("proof_image_url", sa.String(512)),
        sa.Column("quality_certificate_url", sa.String(512)),
        sa.Column("fertilizer_proof_url", sa.String(512)),
        sa.Column("pesticide_proof_url", sa.String(512)),
        sa.Column("metadata_ref", sa.String(128)),
        sa.Column("metadata_ref_kind", sa.String(20), server_default="storage"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_batches_batch_code", "batches", ["batch_code"], unique=True)
    op.create_index("ix_batches_crop_name", "batches", ["crop_name"])
    op.create_index("ix_batches_producer_id", "batches", ["producer_id"])
    op.create_index("ix_batches_created_at", "batches", ["created_at"])

    # ── Journey (append-only) ────────────────────────────────

    op.create_table(
        "journey_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("handler_id", sa.String(36), nullable=False),
        sa.Column("role", sa.String(30), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("quantity", sa.BigInteger()),
        sa.Column("ledger_tx_ref", sa.String(128), server_default="pending"),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("batch_id", "sequence", name="uq_journey_batch_sequence"),
    )
    op.create_index("ix_journey_events_batch_id", "journey_events", ["batch_id"])
    op.create_index("ix_journey_events_handler_id", "journey_events", ["handler_id"])
    op.create_index("ix_journey_events_recorded_at", "journey_events", ["recorded_at"])

    # ── Listings (tree per batch) ────────────────────────────

    op.create_table(
        "listings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("batch_id", sa.String(36), sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("parent_listing_id", sa.String(36), sa.ForeignKey("listings.id")),
        sa.Column("order_id", sa.String(36), unique=True),
        sa.Column("ledger_record_id", sa.String(96)),
        sa.Column("seller_id", sa.String(36), nullable=False),
        sa.Column("quantity_available", sa.BigInteger(), nullable=False),
        sa.Column("price_per_kg", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("quantity_available >= 0", name="ck_listing_quantity_non_negative"),
    )
    op.create_index("ix_listings_batch_id", "listings", ["batch_id"])
    op.create_index("ix_listings_parent_listing_id", "listings", ["parent_listing_id"])
    op.create_index("ix_listings_seller_id", "listings", ["seller_id"])
    op.create_index("ix_listings_is_active", "listings", ["is_active"])
    op.create_index("ix_listings_created_at", "listings", ["created_at"])

    # ── Orders ───────────────────────────────────────────────

    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("listing_id", sa.String(36), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("buyer_id", sa.String(36), nullable=False),
        sa.Column("buyer_role", sa.String(30), nullable=False),
        sa.Column("seller_id", sa.String(36), nullable=False),
        sa.Column("quantity_requested", sa.BigInteger(), nullable=False),
        sa.Column("total_price", sa.Numeric(16, 2), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("payment_ref", sa.String(128)),
        sa.Column("child_listing_id", sa.String(36)),
        sa.Column("ledger_tx_ref", sa.String(128)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_orders_listing_id", "orders", ["listing_id"])
    op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"])
    op.create_index("ix_orders_seller_id", "orders", ["seller_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])


def downgrade() -> None:
    op.drop_table("orders")
    op.drop_table("listings")
    op.drop_table("journey_events")
    op.drop_table("batches")
