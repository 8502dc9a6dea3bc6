"""Initial schema for receipt scanning

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
import uuid

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

# Global taxonomy (owner_id NULL), visible to every owner
DEFAULT_CATEGORIES = [
    'Food',
    'Groceries',
    'Health',
    'Transport',
    'Shopping',
    'Electronics',
    'Home & Garden',
    'Entertainment',
    'Bills & Utilities',
    'Other',
]


def upgrade():
    categories = op.create_table(
        'categories',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(64), nullable=True),
        sa.Column('name', sa.String(120), nullable=False),
    )
    op.create_index('idx_categories_owner', 'categories', ['owner_id'])

    op.create_table(
        'receipts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('vendor', sa.String(255)),
        sa.Column('transaction_date', sa.Date),
        sa.Column('total', sa.Numeric(12, 2)),
        sa.Column('currency', sa.String(3)),
        sa.Column('notes', sa.JSON),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_receipts_owner', 'receipts', ['owner_id'])
    op.create_index('idx_receipts_status', 'receipts', ['status'])
    # Duplicate lookup key
    op.create_index('idx_receipts_natural_key', 'receipts',
                    ['owner_id', 'vendor', 'total', 'transaction_date'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('receipt_id', sa.String(36), nullable=False),
        sa.Column('title', sa.Text, nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('vendor', sa.String(255), nullable=False),
        sa.Column('category_id', sa.String(36)),
        sa.Column('source', sa.String(16), nullable=False, server_default='ocr'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_transactions_owner', 'transactions', ['owner_id'])
    op.create_index('idx_transactions_receipt', 'transactions', ['receipt_id'])

    op.bulk_insert(
        categories,
        [{'id': str(uuid.uuid4()), 'owner_id': None, 'name': name} for name in DEFAULT_CATEGORIES],
    )


def downgrade():
    op.drop_table('transactions')
    op.drop_table('receipts')
    op.drop_table('categories')
