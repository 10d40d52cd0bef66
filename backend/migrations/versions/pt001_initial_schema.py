"""Initial schema: workspaces, products, stock ledger, orders, returns, evidence, audit

Revision ID: pt001_initial_schema
Revises:
Create Date: 2026-10-19

This migration creates:
1. workspaces (tenant root)
2. products with optimistic version_id and a non-negative quantity check
3. stock_movements (append-only signed deltas)
4. orders and order_items with the stock_deducted / stock_returned flags
5. returns (RETURN / RTO)
6. videos and packing_evidence
7. audit_logs
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'pt001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text('(CURRENT_TIMESTAMP)'),
        nullable=nullable,
    )


def upgrade():
    # ==========================================================================
    # 1. WORKSPACES
    # ==========================================================================
    op.create_table('workspaces',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id', name='pk_workspaces'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('workspaces', schema=None) as batch_op:
        batch_op.create_index('ix_workspaces_code', ['code'], unique=True)
        batch_op.create_index('ix_workspaces_is_active', ['is_active'], unique=False)

    # ==========================================================================
    # 2. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workspace_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_non_negative'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], name='fk_products_workspace_id_workspaces'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('workspace_id', 'sku', name='uq_products_workspace_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_workspace_id', ['workspace_id'], unique=False)
        batch_op.create_index('ix_products_workspace_name', ['workspace_id', 'name'], unique=False)

    # ==========================================================================
    # 3. STOCK MOVEMENTS (append-only)
    # ==========================================================================
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workspace_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('direction', sa.String(length=8), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reference_type', sa.String(length=16), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.CheckConstraint('quantity_delta <> 0', name='ck_stock_movements_nonzero'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], name='fk_stock_movements_workspace_id_workspaces'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_stock_movements_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_stock_movements'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movements_workspace_id', ['workspace_id'], unique=False)
        batch_op.create_index('ix_stock_movements_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_stock_movements_movement_type', ['movement_type'], unique=False)
        batch_op.create_index('ix_stock_movements_actor_id', ['actor_id'], unique=False)
        batch_op.create_index('ix_stock_movements_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_stock_movements_product_created', ['product_id', 'created_at'], unique=False)
        batch_op.create_index('ix_stock_movements_reference', ['reference_type', 'reference_id'], unique=False)

    # ==========================================================================
    # 4. ORDERS / ORDER ITEMS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workspace_id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='NEW'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('packed_by', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], name='fk_orders_workspace_id_workspaces'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('workspace_id', 'order_number', name='uq_orders_workspace_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index('ix_orders_workspace_id', ['workspace_id'], unique=False)
        batch_op.create_index('ix_orders_status', ['status'], unique=False)
        batch_op.create_index('ix_orders_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_orders_workspace_status_created', ['workspace_id', 'status', 'created_at'], unique=False)

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_deducted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('stock_returned', sa.Boolean(), nullable=False, server_default='0'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('NOT stock_returned OR stock_deducted', name='ck_order_items_returned_requires_deducted'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_order_items_order_id_orders'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_order_items_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index('ix_order_items_order_id', ['order_id'], unique=False)
        batch_op.create_index('ix_order_items_product_id', ['product_id'], unique=False)

    # ==========================================================================
    # 5. RETURNS
    # ==========================================================================
    op.create_table('returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workspace_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('return_type', sa.String(length=8), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('inspection_notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('restock_status', sa.String(length=8), nullable=True),
        sa.Column('stock_restored', sa.Boolean(), nullable=False, server_default='0'),
        _timestamp('created_at'),
        sa.Column('inspected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('inspected_by', sa.Integer(), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('completed_by', sa.Integer(), nullable=True),
        sa.Column('rejected_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], name='fk_returns_workspace_id_workspaces'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_returns_order_id_orders'),
        sa.PrimaryKeyConstraint('id', name='pk_returns'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('returns', schema=None) as batch_op:
        batch_op.create_index('ix_returns_workspace_id', ['workspace_id'], unique=False)
        batch_op.create_index('ix_returns_order_id', ['order_id'], unique=False)
        batch_op.create_index('ix_returns_status', ['status'], unique=False)
        batch_op.create_index('ix_returns_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_returns_workspace_status_created', ['workspace_id', 'status', 'created_at'], unique=False)

    # ==========================================================================
    # 6. VIDEO EVIDENCE / PACKING CHECKLIST
    # ==========================================================================
    op.create_table('videos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('file_path', sa.String(length=1024), nullable=False),
        sa.Column('file_hash', sa.String(length=64), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('is_valid', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('recorded_by', sa.Integer(), nullable=True),
        _timestamp('recorded_at'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_videos_order_id_orders'),
        sa.PrimaryKeyConstraint('id', name='pk_videos'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('videos', schema=None) as batch_op:
        batch_op.create_index('ix_videos_order_id', ['order_id'], unique=False)
        batch_op.create_index('ix_videos_order_recorded', ['order_id', 'recorded_at'], unique=False)

    op.create_table('packing_evidence',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workspace_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('video_id', sa.Integer(), nullable=True),
        sa.Column('checklist_product_correct', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('checklist_quantity_correct', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('checklist_sealing_done', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('photo_before_seal', sa.String(length=1024), nullable=True),
        sa.Column('photo_after_seal', sa.String(length=1024), nullable=True),
        sa.Column('recorded_by', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], name='fk_packing_evidence_workspace_id_workspaces'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_packing_evidence_order_id_orders'),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], name='fk_packing_evidence_video_id_videos'),
        sa.PrimaryKeyConstraint('id', name='pk_packing_evidence'),
        sa.UniqueConstraint('order_id', name='uq_packing_evidence_order'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('packing_evidence', schema=None) as batch_op:
        batch_op.create_index('ix_packing_evidence_workspace_id', ['workspace_id'], unique=False)

    # ==========================================================================
    # 7. AUDIT LOG
    # ==========================================================================
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workspace_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['workspace_id'], ['workspaces.id'], name='fk_audit_logs_workspace_id_workspaces'),
        sa.PrimaryKeyConstraint('id', name='pk_audit_logs'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_workspace_id', ['workspace_id'], unique=False)
        batch_op.create_index('ix_audit_logs_actor_id', ['actor_id'], unique=False)
        batch_op.create_index('ix_audit_logs_action', ['action'], unique=False)
        batch_op.create_index('ix_audit_logs_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_audit_logs_workspace_created', ['workspace_id', 'created_at'], unique=False)
        batch_op.create_index('ix_audit_logs_entity', ['entity_type', 'entity_id'], unique=False)


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('packing_evidence')
    op.drop_table('videos')
    op.drop_table('returns')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('stock_movements')
    op.drop_table('products')
    op.drop_table('workspaces')
