"""initial schema

Revision ID: r001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema from scratch:
- users / session_tokens / audit_logs: PIN login, backend sessions, audit trail
- purchase_accounts / phones: inventory units and where they were bought
- repairs / stock_pieces / repair_parts: repair jobs and the parts ledger
- materiel_expenses: tools and consumables spend
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'r001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # users: one principal per device, bcrypt PIN hash
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('pin_hash', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('session_timeout_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('last_activity', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # ============================================================================
    # session_tokens: SHA-256 token hashes, idle lock via locked_at
    # ============================================================================
    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_user_revoked', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # audit_logs: best-effort append-only trail
    # ============================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_user_created', 'audit_logs', ['user_id', 'created_at'])

    # ============================================================================
    # purchase_accounts
    # ============================================================================
    op.create_table(
        'purchase_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('color', sa.String(length=32), nullable=False, server_default='#8b5cf6'),
        sa.Column('icon', sa.String(length=64), nullable=False, server_default='shopping-bag'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'name', name='uq_purchase_accounts_user_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_accounts_user_id', 'purchase_accounts', ['user_id'])

    # ============================================================================
    # phones: sale_price / sale_date only meaningful while is_sold
    # ============================================================================
    op.create_table(
        'phones',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('model', sa.String(length=120), nullable=False),
        sa.Column('storage', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('color', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('imei', sa.String(length=64), nullable=False),
        sa.Column('condition', sa.String(length=32), nullable=False, server_default='Very Good'),
        sa.Column('purchase_price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('purchase_account_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_sold', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('sale_date', sa.Date(), nullable=True),
        sa.Column('qr_code', sa.Text(), nullable=True),
        sa.Column('archived', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['purchase_account_id'], ['purchase_accounts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'imei', name='uq_phones_user_imei'),
        sa.CheckConstraint('purchase_price >= 0', name='ck_phones_purchase_price_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_phones_user_id', 'phones', ['user_id'])
    op.create_index('ix_phones_purchase_account_id', 'phones', ['purchase_account_id'])
    op.create_index('ix_phones_user_sold', 'phones', ['user_id', 'is_sold'])

    # ============================================================================
    # repairs: total_cost written only by the parts ledger
    # ============================================================================
    op.create_table(
        'repairs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('phone_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('repair_list', sa.Text(), nullable=False, server_default=''),
        sa.Column('labor_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('technician', sa.String(length=120), nullable=True),
        sa.Column('photo_url', sa.String(length=512), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['phone_id'], ['phones.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('labor_cost >= 0', name='ck_repairs_labor_cost_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_repairs_user_id', 'repairs', ['user_id'])
    op.create_index('ix_repairs_phone_id', 'repairs', ['phone_id'])
    op.create_index('ix_repairs_status', 'repairs', ['status'])
    op.create_index('ix_repairs_user_status', 'repairs', ['user_id', 'status'])

    # ============================================================================
    # stock_pieces: quantity never negative
    # ============================================================================
    op.create_table(
        'stock_pieces',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('purchase_price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('supplier', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('supplier_link', sa.String(length=1024), nullable=False, server_default=''),
        sa.Column('phone_model', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_pieces_quantity_nonneg'),
        sa.CheckConstraint('purchase_price >= 0', name='ck_stock_pieces_price_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_pieces_user_id', 'stock_pieces', ['user_id'])
    op.create_index('ix_stock_pieces_user_name', 'stock_pieces', ['user_id', 'name'])

    # ============================================================================
    # repair_parts: consumption rows with a unit price snapshot
    # ============================================================================
    op.create_table(
        'repair_parts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repair_id', sa.Integer(), nullable=False),
        sa.Column('stock_piece_id', sa.Integer(), nullable=False),
        sa.Column('quantity_used', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['repair_id'], ['repairs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['stock_piece_id'], ['stock_pieces.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity_used >= 1', name='ck_repair_parts_quantity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_repair_parts_repair_id', 'repair_parts', ['repair_id'])
    op.create_index('ix_repair_parts_stock_piece_id', 'repair_parts', ['stock_piece_id'])

    # ============================================================================
    # materiel_expenses
    # ============================================================================
    op.create_table(
        'materiel_expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='Autres'),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount >= 0', name='ck_materiel_expenses_amount_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_materiel_expenses_user_id', 'materiel_expenses', ['user_id'])
    op.create_index('ix_materiel_expenses_user_date', 'materiel_expenses', ['user_id', 'purchase_date'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('materiel_expenses')
    op.drop_table('repair_parts')
    op.drop_table('stock_pieces')
    op.drop_table('repairs')
    op.drop_table('phones')
    op.drop_table('purchase_accounts')
    op.drop_table('audit_logs')
    op.drop_table('session_tokens')
    op.drop_table('users')
