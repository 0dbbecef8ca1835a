"""Payments, duplicate cases, invoice orders, credits and event outbox

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates: customers, payments, duplicate_cases, invoice_orders,
customer_credits, event_outbox
Enums: paymentprovider, paymentstatus, paymentmethod, duplicatestatus,
duplicatecasestatus, invoiceorderstatus, eventstatus
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ── 1. Enum types (SQLAlchemy persists member names) ──────────────────
    op.execute("""
        CREATE TYPE paymentprovider AS ENUM (
            'MERCADOPAGO', 'DLOCAL', 'STRIPE', 'TRANSFER', 'MANUAL', 'EXCEL_IMPORT'
        );
    """)
    op.execute("CREATE TYPE paymentstatus AS ENUM ('PENDING', 'APPROVED', 'REJECTED', 'REFUNDED');")
    op.execute("CREATE TYPE paymentmethod AS ENUM ('CARD', 'TRANSFER', 'CASH', 'UNKNOWN');")
    op.execute("CREATE TYPE duplicatestatus AS ENUM ('NONE', 'SUSPECTED', 'CONFIRMED', 'IGNORED');")
    op.execute("CREATE TYPE duplicatecasestatus AS ENUM ('OPEN', 'RESOLVED', 'DISMISSED');")
    op.execute("""
        CREATE TYPE invoiceorderstatus AS ENUM (
            'PENDING', 'ISSUING', 'ISSUED', 'PDF_READY', 'EMAIL_SENT', 'FAILED'
        );
    """)
    op.execute("CREATE TYPE eventstatus AS ENUM ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED');")

    # ── 2. customers ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE customers (
            id VARCHAR(64) PRIMARY KEY,
            school_context_id VARCHAR(64) NOT NULL,
            first_name VARCHAR(120) NOT NULL DEFAULT '',
            last_name VARCHAR(120) NOT NULL DEFAULT '',
            email VARCHAR(255),
            doc_tipo INTEGER NOT NULL DEFAULT 99,
            doc_nro VARCHAR(20),
            archived BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_customers_school_context_id ON customers (school_context_id);")

    # ── 3. payments ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE payments (
            id VARCHAR(255) PRIMARY KEY,
            customer_id VARCHAR(64) NOT NULL REFERENCES customers(id) ON DELETE RESTRICT,
            school_context_id VARCHAR(64) NOT NULL,
            period VARCHAR(7),
            amount NUMERIC(15, 2) NOT NULL,
            currency VARCHAR(3) NOT NULL DEFAULT 'ARS',
            provider paymentprovider NOT NULL,
            provider_payment_id VARCHAR(255),
            status paymentstatus NOT NULL,
            paid_at TIMESTAMPTZ NOT NULL,
            method paymentmethod NOT NULL DEFAULT 'UNKNOWN',
            reference TEXT,
            fingerprint_hash VARCHAR(64) NOT NULL,
            duplicate_status duplicatestatus NOT NULL DEFAULT 'NONE',
            duplicate_case_id VARCHAR(36),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_payments_provider_payment UNIQUE (provider, provider_payment_id)
        );
    """)
    op.execute("""
        CREATE INDEX ix_payments_fingerprint
            ON payments (school_context_id, fingerprint_hash, status);
    """)
    op.execute("CREATE INDEX ix_payments_customer_id ON payments (customer_id);")

    # ── 4. duplicate_cases ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE duplicate_cases (
            id VARCHAR(36) PRIMARY KEY,
            school_context_id VARCHAR(64) NOT NULL,
            customer_id VARCHAR(64) NOT NULL,
            fingerprint_hash VARCHAR(64) NOT NULL,
            window_minutes INTEGER NOT NULL,
            payment_ids JSONB NOT NULL DEFAULT '[]',
            status duplicatecasestatus NOT NULL DEFAULT 'OPEN',
            resolution JSONB,
            resolved_at TIMESTAMPTZ,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    # At most one open case per fingerprint
    op.execute("""
        CREATE UNIQUE INDEX uq_duplicate_cases_open_fingerprint
            ON duplicate_cases (school_context_id, fingerprint_hash)
            WHERE status = 'OPEN';
    """)
    op.execute("""
        CREATE INDEX ix_duplicate_cases_school_status
            ON duplicate_cases (school_context_id, status);
    """)

    # ── 5. invoice_orders ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE invoice_orders (
            id VARCHAR(64) PRIMARY KEY,
            customer_id VARCHAR(64) NOT NULL,
            school_context_id VARCHAR(64),
            concept VARCHAR(255) NOT NULL,
            period_key VARCHAR(32),
            amount NUMERIC(15, 2) NOT NULL,
            currency VARCHAR(3) NOT NULL DEFAULT 'ARS',
            payment_ids_applied JSONB NOT NULL DEFAULT '[]',
            duplicate_case_id VARCHAR(36),
            status invoiceorderstatus NOT NULL DEFAULT 'PENDING',
            afip JSONB,
            pdf_url VARCHAR(1024),
            email JSONB,
            failure_reason TEXT,
            retry_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("""
        CREATE INDEX ix_invoice_orders_status_created
            ON invoice_orders (status, created_at);
    """)
    op.execute("CREATE INDEX ix_invoice_orders_customer_id ON invoice_orders (customer_id);")

    # ── 6. customer_credits ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE customer_credits (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            customer_id VARCHAR(64) NOT NULL,
            amount NUMERIC(15, 2) NOT NULL,
            currency VARCHAR(3) NOT NULL DEFAULT 'ARS',
            source_payment_ids JSONB NOT NULL DEFAULT '[]',
            source_duplicate_case_id VARCHAR(36),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_customer_credits_customer_id ON customer_credits (customer_id);")

    # ── 7. event_outbox ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE event_outbox (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_type VARCHAR(255) NOT NULL,
            aggregate_type VARCHAR(255) NOT NULL,
            aggregate_id VARCHAR(255) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}',
            status eventstatus NOT NULL DEFAULT 'PENDING',
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            processed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_event_outbox_status ON event_outbox (status);")
    op.execute("CREATE INDEX ix_event_outbox_event_type ON event_outbox (event_type);")
    op.execute("""
        CREATE INDEX ix_event_outbox_aggregate
            ON event_outbox (aggregate_type, aggregate_id);
    """)


def downgrade() -> None:
    for table in (
        "event_outbox",
        "customer_credits",
        "invoice_orders",
        "duplicate_cases",
        "payments",
        "customers",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
    for enum_type in (
        "eventstatus",
        "invoiceorderstatus",
        "duplicatecasestatus",
        "duplicatestatus",
        "paymentmethod",
        "paymentstatus",
        "paymentprovider",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_type};")
