"""initial sync schema

Revision ID: 3a1c0e7d52b4
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3a1c0e7d52b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list:
    columns = [sa.Column('created_at', sa.DateTime(), nullable=True)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=True))
    return columns


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'connections',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('provider_kind', sa.String(), nullable=False),
        sa.Column('credentials', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_connections_user_id', 'connections', ['user_id'])

    op.create_table(
        'accounts',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('classification', sa.String(), nullable=False),
        sa.Column('accountable_type', sa.String(), nullable=True),
        sa.Column('balance', sa.Numeric(19, 4), nullable=False),
        sa.Column('cash_balance', sa.Numeric(19, 4), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_accounts_user_id', 'accounts', ['user_id'])

    op.create_table(
        'provider_accounts',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column(
            'connection_id', sa.String(length=36),
            sa.ForeignKey('connections.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('institution_id', sa.String(), nullable=True),
        sa.Column('institution_name', sa.String(), nullable=True),
        sa.Column('account_type', sa.String(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('current_balance', sa.Numeric(19, 4), nullable=True),
        sa.Column('raw_payload', sa.JSON(), nullable=True),
        sa.Column('raw_activities_payload', sa.JSON(), nullable=True),
        sa.Column('activities_fetch_pending', sa.Boolean(), nullable=False),
        sa.Column(
            'account_id', sa.String(length=36),
            sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True,
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            'connection_id', 'external_id', name='uix_provider_account_connection_external'
        ),
    )
    op.create_index('ix_provider_accounts_connection_id', 'provider_accounts', ['connection_id'])
    op.create_index('ix_provider_accounts_account_id', 'provider_accounts', ['account_id'])

    op.create_table(
        'securities',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('ticker', sa.String(), nullable=False, unique=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('exchange', sa.String(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'categories',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_categories_user_id', 'categories', ['user_id'])

    op.create_table(
        'merchants',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('provider_merchant_id', sa.String(), nullable=True),
        sa.Column('website_url', sa.String(), nullable=True),
        sa.Column('logo_url', sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('source', 'name', name='uix_merchant_source_name'),
    )

    op.create_table(
        'entries',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column(
            'account_id', sa.String(length=36),
            sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('entryable_type', sa.String(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(19, 4), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('external_id', sa.String(), nullable=True),
        sa.Column('source', sa.String(), nullable=True),
        sa.Column('locked_attributes', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            'account_id', 'external_id', 'source', name='uix_entry_account_external_source'
        ),
    )
    op.create_index('ix_entries_account_id', 'entries', ['account_id'])
    op.create_index('ix_entries_date', 'entries', ['date'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column(
            'entry_id', sa.String(length=36),
            sa.ForeignKey('entries.id', ondelete='CASCADE'), nullable=False, unique=True,
        ),
        sa.Column('category_id', sa.String(length=36), sa.ForeignKey('categories.id'), nullable=True),
        sa.Column('merchant_id', sa.String(length=36), sa.ForeignKey('merchants.id'), nullable=True),
        sa.Column('pending', sa.Boolean(), nullable=False),
        sa.Column('locked_attributes', sa.JSON(), nullable=False),
    )

    op.create_table(
        'trades',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column(
            'entry_id', sa.String(length=36),
            sa.ForeignKey('entries.id', ondelete='CASCADE'), nullable=False, unique=True,
        ),
        sa.Column(
            'security_id', sa.String(length=36),
            sa.ForeignKey('securities.id', ondelete='RESTRICT'), nullable=False,
        ),
        sa.Column('qty', sa.Numeric(24, 8), nullable=False),
        sa.Column('price', sa.Numeric(19, 8), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
    )
    op.create_index('ix_trades_security_id', 'trades', ['security_id'])

    op.create_table(
        'valuations',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column(
            'entry_id', sa.String(length=36),
            sa.ForeignKey('entries.id', ondelete='CASCADE'), nullable=False, unique=True,
        ),
    )

    op.create_table(
        'data_enrichments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('enrichable_type', sa.String(), nullable=False),
        sa.Column('enrichable_id', sa.String(length=36), nullable=False),
        sa.Column('attribute_name', sa.String(), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('source', sa.String(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            'enrichable_type', 'enrichable_id', 'attribute_name', 'source',
            name='uix_data_enrichment_record_attribute_source',
        ),
    )
    op.create_index('ix_data_enrichments_enrichable_id', 'data_enrichments', ['enrichable_id'])

    op.create_table(
        'holdings',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column(
            'account_id', sa.String(length=36),
            sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column(
            'security_id', sa.String(length=36),
            sa.ForeignKey('securities.id', ondelete='RESTRICT'), nullable=False,
        ),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('qty', sa.Numeric(24, 8), nullable=False),
        sa.Column('price', sa.Numeric(19, 8), nullable=False),
        sa.Column('amount', sa.Numeric(19, 4), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('cost_basis', sa.Numeric(19, 8), nullable=True),
        sa.Column('source', sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            'account_id', 'security_id', 'date', 'currency',
            name='uix_holding_account_security_date_currency',
        ),
    )
    op.create_index('ix_holdings_account_id', 'holdings', ['account_id'])
    op.create_index('ix_holdings_security_id', 'holdings', ['security_id'])

    op.create_table(
        'balances',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column(
            'account_id', sa.String(length=36),
            sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('balance', sa.Numeric(19, 4), nullable=False),
        sa.Column('cash_balance', sa.Numeric(19, 4), nullable=False),
        sa.Column('holdings_value', sa.Numeric(19, 4), nullable=False),
        sa.Column('cash_inflows', sa.Numeric(19, 4), nullable=False),
        sa.Column('cash_outflows', sa.Numeric(19, 4), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            'account_id', 'date', 'currency', name='uix_balance_account_date_currency'
        ),
    )
    op.create_index('ix_balances_account_id', 'balances', ['account_id'])

    op.create_table(
        'syncs',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column(
            'connection_id', sa.String(length=36),
            sa.ForeignKey('connections.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('status_text', sa.String(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('window_start_date', sa.Date(), nullable=True),
        sa.Column('window_end_date', sa.Date(), nullable=True),
        sa.Column('sync_stats', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('failed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_syncs_connection_id', 'syncs', ['connection_id'])


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        'syncs',
        'balances',
        'holdings',
        'data_enrichments',
        'valuations',
        'trades',
        'transactions',
        'entries',
        'merchants',
        'categories',
        'securities',
        'provider_accounts',
        'accounts',
        'connections',
    ):
        op.drop_table(table)
