"""Initial ledger schema: catalog, sales, cost history, fee ledger, import locks

Revision ID: 5c1e7a90b2d4
Revises:
Create Date: 2026-01-20 10:42:17.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1e7a90b2d4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Catalog
    op.create_table(
        'materials',
        sa.Column('material_id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('sell_rate_per_unit', sa.Numeric(18, 6), nullable=True),
        sa.PrimaryKeyConstraint('material_id')
    )
    op.create_table(
        'products',
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('weight', sa.Numeric(12, 3), nullable=True),
        sa.Column('material_id', sa.String(length=64), nullable=True),
        sa.Column('postage_cost', sa.Numeric(14, 4), nullable=False),
        sa.ForeignKeyConstraint(['material_id'], ['materials.material_id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('sku')
    )
    op.create_index('ix_products_material_id', 'products', ['material_id'])

    # Sales with locked-in cost
    op.create_table(
        'sales',
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('external_order_number', sa.String(length=32), nullable=True),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('order_date', sa.Date(), nullable=False),
        sa.Column('sale_price', sa.Numeric(14, 4), nullable=False),
        sa.Column('tax_amount', sa.Numeric(14, 4), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('cost_at_sale', sa.Numeric(14, 4), nullable=False),
        sa.Column('cost_source', sa.String(length=20), nullable=False),
        sa.PrimaryKeyConstraint('order_id'),
        sa.UniqueConstraint('external_order_number')
    )
    op.create_index('ix_sales_sku', 'sales', ['sku'])
    op.create_index('ix_sales_order_date', 'sales', ['order_date'])

    # Append-only cost history (material and SKU override series)
    op.create_table(
        'cost_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('subject_kind', sa.String(length=16), nullable=False),
        sa.Column('subject_id', sa.String(length=64), nullable=False),
        sa.Column('cost_per_unit', sa.Numeric(18, 6), nullable=False),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column('is_current', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('supplier_name', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_cost_subject_date', 'cost_history', ['subject_kind', 'subject_id', 'effective_date']
    )
    # At most one current record per subject
    op.create_index(
        'uq_cost_one_current',
        'cost_history',
        ['subject_kind', 'subject_id'],
        unique=True,
        sqlite_where=sa.text('is_current = 1'),
        postgresql_where=sa.text('is_current'),
    )

    # Fee ledger
    op.create_table(
        'fee_ledger',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('fee_hash', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('fee_type', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(14, 4), nullable=False),
        sa.Column('source_amount', sa.Numeric(14, 4), nullable=False),
        sa.Column('is_credit', sa.Boolean(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('charged_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('fee_hash')
    )
    op.create_index('ix_fee_ledger_order_id', 'fee_ledger', ['order_id'])
    op.create_index('ix_fee_ledger_fee_type', 'fee_ledger', ['fee_type'])
    op.create_index('ix_fee_ledger_charged_date', 'fee_ledger', ['charged_date'])
    op.create_index('ix_fee_type_date', 'fee_ledger', ['fee_type', 'charged_date'])

    # Import period locks
    op.create_table(
        'import_locks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False),
        sa.Column('period', sa.String(length=16), nullable=False),
        sa.Column('locked_at', sa.DateTime(), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('locked_by', sa.String(length=50), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source', 'period', name='uq_lock_source_period')
    )


def downgrade() -> None:
    op.drop_table('import_locks')
    op.drop_index('ix_fee_type_date', table_name='fee_ledger')
    op.drop_index('ix_fee_ledger_charged_date', table_name='fee_ledger')
    op.drop_index('ix_fee_ledger_fee_type', table_name='fee_ledger')
    op.drop_index('ix_fee_ledger_order_id', table_name='fee_ledger')
    op.drop_table('fee_ledger')
    op.drop_index('uq_cost_one_current', table_name='cost_history')
    op.drop_index('ix_cost_subject_date', table_name='cost_history')
    op.drop_table('cost_history')
    op.drop_index('ix_sales_order_date', table_name='sales')
    op.drop_index('ix_sales_sku', table_name='sales')
    op.drop_table('sales')
    op.drop_index('ix_products_material_id', table_name='products')
    op.drop_table('products')
    op.drop_table('materials')
