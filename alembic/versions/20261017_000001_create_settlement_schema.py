"""Create settlement schema

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '20261017_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MONEY = sa.DECIMAL(18, 2)
RATIO = sa.DECIMAL(9, 6)
JSON = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    # Recruitment tree (read model)
    op.create_table(
        'sellers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('upline_id', sa.Integer(), nullable=True),
        sa.Column('tier', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('tier >= 1', name='ck_sellers_check_seller_tier_positive'),
        sa.CheckConstraint('(tier = 1) OR (upline_id IS NOT NULL)', name='ck_sellers_check_seller_upline_required'),
        sa.ForeignKeyConstraint(['upline_id'], ['sellers.id'], name='fk_sellers_upline_id_sellers', ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id', name='pk_sellers'),
    )
    op.create_index('ix_sellers_upline_id', 'sellers', ['upline_id'])

    # Stock
    op.create_table(
        'batches',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('unit_count', sa.Integer(), nullable=False),
        sa.Column('unit_cost', MONEY, nullable=False, server_default='0'),
        sa.Column('house_investment', MONEY, nullable=False),
        sa.Column('seller_investment', MONEY, nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('unit_count > 0', name='ck_batches_check_batch_unit_count_positive'),
        sa.CheckConstraint(
            'house_investment >= 0 AND seller_investment >= 0',
            name='ck_batches_check_batch_investment_non_negative',
        ),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], name='fk_batches_seller_id_sellers', ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id', name='pk_batches'),
    )
    op.create_index('ix_batches_seller_id', 'batches', ['seller_id'])
    op.create_index('ix_batches_state', 'batches', ['state'])

    op.create_table(
        'tranches',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('assigned_units', sa.Integer(), nullable=False),
        sa.Column('delivered', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remaining', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('collected_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('state', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('number >= 1', name='ck_tranches_check_tranche_number_positive'),
        sa.CheckConstraint('delivered >= 0', name='ck_tranches_check_tranche_delivered_non_negative'),
        sa.CheckConstraint(
            'remaining >= 0 AND remaining <= delivered',
            name='ck_tranches_check_tranche_remaining_range',
        ),
        sa.CheckConstraint('collected_amount >= 0', name='ck_tranches_check_tranche_collected_non_negative'),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], name='fk_tranches_batch_id_batches', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], name='fk_tranches_seller_id_sellers', ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id', name='pk_tranches'),
        sa.UniqueConstraint('batch_id', 'number', name='uq_tranche_batch_number'),
    )
    op.create_index('ix_tranches_batch_id', 'tranches', ['batch_id'])
    op.create_index('ix_tranches_seller_id', 'tranches', ['seller_id'])
    op.create_index('ix_tranches_state', 'tranches', ['state'])
    op.create_index('idx_tranche_state_seller', 'tranches', ['state', 'seller_id'])

    # Settlements
    op.create_table(
        'settlements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tranche_id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('profit_model', sa.String(20), nullable=False),
        sa.Column('seller_tier', sa.Integer(), nullable=False),
        sa.Column('collected', MONEY, nullable=False),
        sa.Column('prior_surplus', MONEY, nullable=False, server_default='0'),
        sa.Column('available', MONEY, nullable=False),
        sa.Column('investment_owed', MONEY, nullable=False),
        sa.Column('investment_recoup', MONEY, nullable=False),
        sa.Column('gross_profit', MONEY, nullable=False),
        sa.Column('carried_debt', MONEY, nullable=False, server_default='0'),
        sa.Column('seller_pct', RATIO, nullable=False),
        sa.Column('upline_pct', RATIO, nullable=False),
        sa.Column('expected_transfer', MONEY, nullable=False),
        sa.Column('seller_amount', MONEY, nullable=False),
        sa.Column('audit_trail', JSON, nullable=False),
        sa.Column('actual_transfer', MONEY, nullable=True),
        sa.Column('resulting_surplus', MONEY, nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('superseded_by_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "state IN ('pending', 'confirmed', 'void')",
            name='ck_settlements_check_settlement_state',
        ),
        sa.CheckConstraint('collected >= 0', name='ck_settlements_check_settlement_collected_non_negative'),
        sa.CheckConstraint('investment_recoup >= 0', name='ck_settlements_check_settlement_recoup_non_negative'),
        sa.CheckConstraint('gross_profit >= 0', name='ck_settlements_check_settlement_gross_profit_non_negative'),
        sa.CheckConstraint('carried_debt <= 0', name='ck_settlements_check_settlement_carried_debt_non_positive'),
        sa.CheckConstraint(
            'actual_transfer IS NULL OR actual_transfer >= 0',
            name='ck_settlements_check_settlement_actual_transfer_non_negative',
        ),
        sa.ForeignKeyConstraint(['tranche_id'], ['tranches.id'], name='fk_settlements_tranche_id_tranches', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], name='fk_settlements_batch_id_batches', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], name='fk_settlements_seller_id_sellers', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(
            ['superseded_by_id'], ['settlements.id'],
            name='fk_settlements_superseded_by_id_settlements', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_settlements'),
    )
    op.create_index('ix_settlements_tranche_id', 'settlements', ['tranche_id'])
    op.create_index('ix_settlements_batch_id', 'settlements', ['batch_id'])
    op.create_index('ix_settlements_seller_id', 'settlements', ['seller_id'])
    op.create_index('ix_settlements_state', 'settlements', ['state'])
    op.create_index('ix_settlements_created_at', 'settlements', ['created_at'])
    op.create_index('idx_settlement_seller_state', 'settlements', ['seller_id', 'state'])
    # At most one open settlement per tranche
    op.create_index(
        'uq_settlement_pending_tranche',
        'settlements',
        ['tranche_id'],
        unique=True,
        postgresql_where=sa.text("state = 'pending'"),
        sqlite_where=sa.text("state = 'pending'"),
    )

    op.create_table(
        'cascade_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('settlement_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('level', sa.String(10), nullable=False),
        sa.Column('beneficiary_id', sa.Integer(), nullable=False),
        sa.Column('percentage', RATIO, nullable=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('rationale', sa.String(255), nullable=False),
        sa.ForeignKeyConstraint(
            ['settlement_id'], ['settlements.id'],
            name='fk_cascade_entries_settlement_id_settlements', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['beneficiary_id'], ['sellers.id'],
            name='fk_cascade_entries_beneficiary_id_sellers', ondelete='RESTRICT',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_cascade_entries'),
    )
    op.create_index('ix_cascade_entries_settlement_id', 'cascade_entries', ['settlement_id'])
    op.create_index('ix_cascade_entries_beneficiary_id', 'cascade_entries', ['beneficiary_id'])

    # Surplus ledger
    op.create_table(
        'surplus_balances',
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False, server_default='0'),
        sa.Column('last_applied_settlement_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], name='fk_surplus_balances_seller_id_sellers', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(
            ['last_applied_settlement_id'], ['settlements.id'],
            name='fk_surplus_balances_last_applied_settlement_id_settlements', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('seller_id', name='pk_surplus_balances'),
    )

    op.create_table(
        'surplus_ledger_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('settlement_id', sa.Integer(), nullable=False),
        sa.Column('delta', MONEY, nullable=False),
        sa.Column('balance_after', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ['seller_id'], ['sellers.id'],
            name='fk_surplus_ledger_entries_seller_id_sellers', ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['settlement_id'], ['settlements.id'],
            name='fk_surplus_ledger_entries_settlement_id_settlements', ondelete='RESTRICT',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_surplus_ledger_entries'),
        sa.UniqueConstraint('settlement_id', name='uq_surplus_ledger_entries_settlement_id'),
    )
    op.create_index('ix_surplus_ledger_entries_seller_id', 'surplus_ledger_entries', ['seller_id'])


def downgrade() -> None:
    op.drop_index('ix_surplus_ledger_entries_seller_id', table_name='surplus_ledger_entries')
    op.drop_table('surplus_ledger_entries')
    op.drop_table('surplus_balances')

    op.drop_index('ix_cascade_entries_beneficiary_id', table_name='cascade_entries')
    op.drop_index('ix_cascade_entries_settlement_id', table_name='cascade_entries')
    op.drop_table('cascade_entries')

    op.drop_index('uq_settlement_pending_tranche', table_name='settlements')
    op.drop_index('idx_settlement_seller_state', table_name='settlements')
    op.drop_index('ix_settlements_created_at', table_name='settlements')
    op.drop_index('ix_settlements_state', table_name='settlements')
    op.drop_index('ix_settlements_seller_id', table_name='settlements')
    op.drop_index('ix_settlements_batch_id', table_name='settlements')
    op.drop_index('ix_settlements_tranche_id', table_name='settlements')
    op.drop_table('settlements')

    op.drop_index('idx_tranche_state_seller', table_name='tranches')
    op.drop_index('ix_tranches_state', table_name='tranches')
    op.drop_index('ix_tranches_seller_id', table_name='tranches')
    op.drop_index('ix_tranches_batch_id', table_name='tranches')
    op.drop_table('tranches')

    op.drop_index('ix_batches_state', table_name='batches')
    op.drop_index('ix_batches_seller_id', table_name='batches')
    op.drop_table('batches')

    op.drop_index('ix_sellers_upline_id', table_name='sellers')
    op.drop_table('sellers')
