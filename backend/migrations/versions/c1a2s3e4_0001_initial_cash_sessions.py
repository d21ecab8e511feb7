"""initial cash session schema

Revision ID: c1a2s3e40001
Revises:
Create Date: 2026-10-16 00:00:00.000000

This migration creates the complete caisse schema from scratch:
- locations: Boutiques / till points (reference data, soft-deleted)
- cash_sessions: Daily till sessions, OPEN -> CLOSED
- cash_movements: Append-only cash ledger
- session_audit_events: Append-only audit trail and post-close annotations
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c1a2s3e40001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # locations
    # ============================================================================
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='STORE'),
        sa.Column('city', sa.String(length=128), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('manager_name', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_locations_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_locations_is_active', 'locations', ['is_active'])

    # ============================================================================
    # cash_sessions
    # ============================================================================
    # The partial unique index is the storage-level guarantee that a location
    # never has two OPEN sessions, whatever the callers do concurrently.
    op.create_table(
        'cash_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('opening_balance_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('closing_counted_cents', sa.BigInteger(), nullable=True),
        sa.Column('theoretical_balance_cents', sa.BigInteger(), nullable=True),
        sa.Column('variance_cents', sa.BigInteger(), nullable=True),
        sa.Column('variance_flag', sa.String(length=24), nullable=True),
        sa.Column('opened_by', sa.String(length=128), nullable=True),
        sa.Column('closed_by', sa.String(length=128), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('opening_notes', sa.Text(), nullable=True),
        sa.Column('closing_notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('opening_balance_cents >= 0', name='ck_cash_sessions_opening_non_negative'),
        sa.CheckConstraint("status IN ('OPEN', 'CLOSED')", name='ck_cash_sessions_status'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cash_sessions_location_id', 'cash_sessions', ['location_id'])
    op.create_index('ix_cash_sessions_business_date', 'cash_sessions', ['business_date'])
    op.create_index('ix_cash_sessions_status', 'cash_sessions', ['status'])
    op.create_index('ix_cash_sessions_opened_at', 'cash_sessions', ['opened_at'])
    op.create_index('ix_cash_sessions_location_date', 'cash_sessions', ['location_id', 'business_date'])
    op.create_index(
        'uq_cash_sessions_open_location',
        'cash_sessions',
        ['location_id'],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    # ============================================================================
    # cash_movements: Append-only ledger
    # ============================================================================
    op.create_table(
        'cash_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('payment_method', sa.String(length=24), nullable=False, server_default='cash'),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('reference_type', sa.String(length=24), nullable=True),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('recorded_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['session_id'], ['cash_sessions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount_cents > 0', name='ck_cash_movements_amount_positive'),
        sa.CheckConstraint("kind IN ('ENTRY', 'EXIT', 'SALE')", name='ck_cash_movements_kind'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cash_movements_session_id', 'cash_movements', ['session_id'])
    op.create_index('ix_cash_movements_kind', 'cash_movements', ['kind'])
    op.create_index('ix_cash_movements_created_at', 'cash_movements', ['created_at'])
    op.create_index('ix_cash_movements_session_created', 'cash_movements', ['session_id', 'created_at', 'id'])

    # ============================================================================
    # session_audit_events
    # ============================================================================
    op.create_table(
        'session_audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('movement_id', sa.Integer(), nullable=True),
        sa.Column('actor', sa.String(length=128), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['session_id'], ['cash_sessions.id'], ),
        sa.ForeignKeyConstraint(['movement_id'], ['cash_movements.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_audit_events_session_id', 'session_audit_events', ['session_id'])
    op.create_index('ix_session_audit_events_event_type', 'session_audit_events', ['event_type'])
    op.create_index('ix_session_audit_events_occurred_at', 'session_audit_events', ['occurred_at'])
    op.create_index('ix_session_audit_session_occurred', 'session_audit_events', ['session_id', 'occurred_at'])


def downgrade():
    op.drop_table('session_audit_events')
    op.drop_table('cash_movements')
    op.drop_index('uq_cash_sessions_open_location', table_name='cash_sessions')
    op.drop_table('cash_sessions')
    op.drop_table('locations')
