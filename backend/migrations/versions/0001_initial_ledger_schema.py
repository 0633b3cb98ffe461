"""initial ledger schema

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete ledger schema from scratch:
- businesses / business_settings / users / business_members: tenancy and the
  authorization gate
- inventory_schemas: per-business JSON column definitions
- inventory_items: JSON data blob + optimistic-lock version
- operations: append-only RECEIVING / SALE / RETURN records
- inventory_logs: append-only audit of direct item edits and schema changes
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_ledger'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # Tenancy
    # ============================================================================
    op.create_table(
        'businesses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id', name='pk_businesses'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'business_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('logo_url', sa.String(length=500), nullable=True),
        sa.Column('receipt_header', sa.Text(), nullable=True),
        sa.Column('receipt_footer', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'],
                                name='fk_business_settings_business_id_businesses'),
        sa.PrimaryKeyConstraint('id', name='pk_business_settings'),
        sa.UniqueConstraint('business_id', name='uq_business_settings_business_id'),
    )

    op.create_table(
        'business_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'],
                                name='fk_business_members_business_id_businesses'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'],
                                name='fk_business_members_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_business_members'),
        sa.UniqueConstraint('business_id', 'user_id', name='uq_business_members_business_user'),
    )
    op.create_index('ix_business_members_business_id', 'business_members', ['business_id'])
    op.create_index('ix_business_members_user_id', 'business_members', ['user_id'])

    # ============================================================================
    # Inventory
    # ============================================================================
    op.create_table(
        'inventory_schemas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('columns', sa.JSON(), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'],
                                name='fk_inventory_schemas_business_id_businesses'),
        sa.PrimaryKeyConstraint('id', name='pk_inventory_schemas'),
        sa.UniqueConstraint('business_id', name='uq_inventory_schemas_business_id'),
    )

    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'],
                                name='fk_inventory_items_business_id_businesses'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'],
                                name='fk_inventory_items_created_by_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_inventory_items'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_business_id', 'inventory_items', ['business_id'])
    op.create_index('ix_inventory_items_business_created', 'inventory_items', ['business_id', 'created_at'])

    # ============================================================================
    # operations: append-only ledger (only undone_at/undone_by_id change, once)
    # ============================================================================
    op.create_table(
        'operations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('total_qty', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('customer', sa.String(length=255), nullable=True),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('card_type', sa.String(length=16), nullable=True),
        sa.Column('check_number', sa.String(length=50), nullable=True),
        sa.Column('payments', sa.JSON(), nullable=True),
        sa.Column('cash_tendered', sa.Float(), nullable=True),
        sa.Column('change_given', sa.Float(), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=True),
        sa.Column('total_discount', sa.Float(), nullable=True),
        sa.Column('tax_rate', sa.Float(), nullable=True),
        sa.Column('tax_name', sa.String(length=50), nullable=True),
        sa.Column('tax_amount', sa.Float(), nullable=True),
        sa.Column('grand_total', sa.Float(), nullable=True),
        sa.Column('receipt_logo_url', sa.String(length=500), nullable=True),
        sa.Column('receipt_header', sa.Text(), nullable=True),
        sa.Column('receipt_footer', sa.Text(), nullable=True),
        sa.Column('original_sale_id', sa.Integer(), nullable=True),
        sa.Column('return_reason', sa.Text(), nullable=True),
        sa.Column('refund_method', sa.String(length=32), nullable=True),
        sa.Column('last_return_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('undone_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('undone_by_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'],
                                name='fk_operations_business_id_businesses'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'],
                                name='fk_operations_user_id_users'),
        sa.ForeignKeyConstraint(['undone_by_id'], ['users.id'],
                                name='fk_operations_undone_by_id_users'),
        sa.ForeignKeyConstraint(['original_sale_id'], ['operations.id'],
                                name='fk_operations_original_sale_id_operations'),
        sa.PrimaryKeyConstraint('id', name='pk_operations'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_operations_business_id', 'operations', ['business_id'])
    op.create_index('ix_operations_original_sale_id', 'operations', ['original_sale_id'])
    op.create_index('ix_operations_business_created', 'operations', ['business_id', 'created_at'])
    op.create_index('ix_operations_business_type', 'operations', ['business_id', 'type'])

    # ============================================================================
    # inventory_logs: append-only audit of direct edits
    # ============================================================================
    op.create_table(
        'inventory_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('item_name', sa.String(length=255), nullable=True),
        sa.Column('snapshot', sa.JSON(), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('schema_changes', sa.JSON(), nullable=True),
        sa.Column('undoable', sa.Boolean(), nullable=False),
        sa.Column('undone_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('undone_by_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'],
                                name='fk_inventory_logs_business_id_businesses'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'],
                                name='fk_inventory_logs_user_id_users'),
        sa.ForeignKeyConstraint(['undone_by_id'], ['users.id'],
                                name='fk_inventory_logs_undone_by_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_inventory_logs'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_logs_business_id', 'inventory_logs', ['business_id'])
    op.create_index('ix_inventory_logs_action', 'inventory_logs', ['action'])
    op.create_index('ix_inventory_logs_item_id', 'inventory_logs', ['item_id'])
    op.create_index('ix_inventory_logs_business_created', 'inventory_logs', ['business_id', 'created_at'])


def downgrade():
    op.drop_table('inventory_logs')
    op.drop_table('operations')
    op.drop_table('inventory_items')
    op.drop_table('inventory_schemas')
    op.drop_table('business_members')
    op.drop_table('business_settings')
    op.drop_table('users')
    op.drop_table('businesses')
