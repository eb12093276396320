"""Initial schema with all tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Fixtures table
    op.create_table(
        'fixtures',
        sa.Column('fixture_id', sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column('home_team', sa.String(255), nullable=False),
        sa.Column('away_team', sa.String(255), nullable=False),
        sa.Column('league_id', sa.BigInteger(), nullable=True),
        sa.Column('league_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('starting_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('start_ts', sa.BigInteger(), nullable=False),
        sa.Column('state', sa.String(32), nullable=False, server_default='NotStarted'),
        sa.Column('state_checked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index('ix_fixtures_starting_at', 'fixtures', ['starting_at'])
    op.create_index('ix_fixtures_state', 'fixtures', ['state'])

    # Pre-match odds, decimal x1000
    op.create_table(
        'fixture_odds',
        sa.Column('fixture_id', sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column('bookmaker_id', sa.Integer(), nullable=False),
        sa.Column('odds_home', sa.Integer(), nullable=False),
        sa.Column('odds_draw', sa.Integer(), nullable=False),
        sa.Column('odds_away', sa.Integer(), nullable=False),
        sa.Column('odds_over', sa.Integer(), nullable=False),
        sa.Column('odds_under', sa.Integer(), nullable=False),
        sa.Column('fetched_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Final results and outcomes
    op.create_table(
        'fixture_results',
        sa.Column('fixture_id', sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column('home_score', sa.Integer(), nullable=True),
        sa.Column('away_score', sa.Integer(), nullable=True),
        sa.Column('ht_home_score', sa.Integer(), nullable=True),
        sa.Column('ht_away_score', sa.Integer(), nullable=True),
        sa.Column('outcome_1x2', sa.String(8), nullable=True),
        sa.Column('outcome_ou25', sa.String(8), nullable=True),
        sa.Column('outcome_ou05', sa.String(8), nullable=True),
        sa.Column('outcome_ou15', sa.String(8), nullable=True),
        sa.Column('outcome_ou35', sa.String(8), nullable=True),
        sa.Column('outcome_btts', sa.String(8), nullable=True),
        sa.Column('outcome_ht_1x2', sa.String(8), nullable=True),
        sa.Column('outcome_ht_ou05', sa.String(8), nullable=True),
        sa.Column('outcome_ht_ou15', sa.String(8), nullable=True),
        sa.Column('finished_state', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Cycles table (mirror of the contract)
    op.create_table(
        'cycles',
        sa.Column('cycle_id', sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column('game_date', sa.Date(), nullable=True, unique=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='Open'),
        sa.Column('matches_data', postgresql.JSONB(), nullable=True),
        sa.Column('cycle_start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cycle_end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_ts', sa.BigInteger(), nullable=True),
        sa.Column('prize_pool', sa.Numeric(78, 0), nullable=True),
        sa.Column('slip_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tx_hash', sa.String(66), nullable=True),
        sa.Column('ready_for_resolution', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('resolution_data', postgresql.JSONB(), nullable=True),
        sa.Column('resolution_prepared_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_resolved', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_tx_hash', sa.String(66), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index('ix_cycles_status', 'cycles', ['status'])
    op.create_index('ix_cycles_is_resolved', 'cycles', ['is_resolved'])

    # Daily selections, slot ordered
    op.create_table(
        'daily_game_matches',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('fixture_id', sa.BigInteger(), nullable=False),
        sa.Column('cycle_id', sa.BigInteger(), nullable=False),
        sa.Column('game_date', sa.Date(), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('home_team', sa.String(255), nullable=False),
        sa.Column('away_team', sa.String(255), nullable=False),
        sa.Column('league_name', sa.String(255), nullable=False, server_default=''),
        sa.Column('match_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('start_ts', sa.BigInteger(), nullable=False),
        sa.Column('odds_home', sa.Integer(), nullable=False),
        sa.Column('odds_draw', sa.Integer(), nullable=False),
        sa.Column('odds_away', sa.Integer(), nullable=False),
        sa.Column('odds_over', sa.Integer(), nullable=False),
        sa.Column('odds_under', sa.Integer(), nullable=False),
        sa.Column('priority_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('fixture_id', 'cycle_id', name='uq_daily_game_matches_fixture_cycle'),
        sa.UniqueConstraint('cycle_id', 'display_order', name='uq_daily_game_matches_cycle_order'),
    )
    op.create_index('ix_daily_game_matches_cycle_id', 'daily_game_matches', ['cycle_id'])
    op.create_index('ix_daily_game_matches_game_date', 'daily_game_matches', ['game_date'])

    # Slips and prize claims
    op.create_table(
        'slips',
        sa.Column('slip_id', sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column('cycle_id', sa.BigInteger(), nullable=False),
        sa.Column('player_address', sa.String(42), nullable=False),
        sa.Column('placed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('predictions', postgresql.JSONB(), nullable=False),
        sa.Column('tx_hash', sa.String(66), nullable=True),
        sa.Column('is_evaluated', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('correct_count', sa.Integer(), nullable=True),
        sa.Column('final_score', sa.Numeric(78, 0), nullable=True),
        sa.Column('evaluated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('leaderboard_rank', sa.Integer(), nullable=True),
        sa.Column('onchain_correct_count', sa.Integer(), nullable=True),
        sa.Column('onchain_final_score', sa.Numeric(78, 0), nullable=True),
        sa.Column('prize_claimed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_slips_cycle_id', 'slips', ['cycle_id'])
    op.create_index('ix_slips_player_address', 'slips', ['player_address'])
    op.create_index('ix_slips_is_evaluated', 'slips', ['is_evaluated'])

    op.create_table(
        'prize_claims',
        sa.Column('cycle_id', sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column('player_address', sa.String(42), primary_key=True),
        sa.Column('rank', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(78, 0), nullable=False),
        sa.Column('tx_hash', sa.String(66), nullable=False),
        sa.Column('claimed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Indexed contract events
    op.create_table(
        'chain_events',
        sa.Column('tx_hash', sa.String(66), primary_key=True),
        sa.Column('log_index', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('event_name', sa.String(64), nullable=False),
        sa.Column('cycle_id', sa.BigInteger(), nullable=True),
        sa.Column('contract_address', sa.String(42), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('args', postgresql.JSONB(), nullable=False),
        sa.Column('indexed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_chain_events_event_name', 'chain_events', ['event_name'])
    op.create_index('ix_chain_events_cycle_id', 'chain_events', ['cycle_id'])
    op.create_index('ix_chain_events_block_number', 'chain_events', ['block_number'])

    op.create_table(
        'event_watermarks',
        sa.Column('contract_address', sa.String(42), primary_key=True),
        sa.Column('last_block', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )

    # Scheduler coordination
    op.create_table(
        'job_locks',
        sa.Column('lock_name', sa.String(128), primary_key=True),
        sa.Column('locked_by', sa.String(255), nullable=False),
        sa.Column('execution_id', sa.String(36), nullable=False),
        sa.Column('locked_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_job_locks_expires_at', 'job_locks', ['expires_at'])

    op.create_table(
        'job_executions',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('job_name', sa.String(64), nullable=False),
        sa.Column('execution_id', sa.String(36), nullable=False, unique=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('result', postgresql.JSONB(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
    )
    op.create_index('ix_job_executions_job_name', 'job_executions', ['job_name'])
    op.create_index('ix_job_executions_started_at', 'job_executions', ['started_at'])

    # Operator-facing failure records
    op.create_table(
        'sync_issues',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('kind', sa.String(64), nullable=False),
        sa.Column('chain_cycle_id', sa.BigInteger(), nullable=True),
        sa.Column('db_cycle_id', sa.BigInteger(), nullable=True),
        sa.Column('details', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_sync_issues_created_at', 'sync_issues', ['created_at'])

    op.create_table(
        'health_reports',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('job_name', sa.String(64), nullable=False),
        sa.Column('kind', sa.String(64), nullable=False),
        sa.Column('cycle_id', sa.BigInteger(), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('details', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_health_reports_job_name', 'health_reports', ['job_name'])
    op.create_index('ix_health_reports_created_at', 'health_reports', ['created_at'])


def downgrade() -> None:
    op.drop_table('health_reports')
    op.drop_table('sync_issues')
    op.drop_table('job_executions')
    op.drop_table('job_locks')
    op.drop_table('event_watermarks')
    op.drop_table('chain_events')
    op.drop_table('prize_claims')
    op.drop_table('slips')
    op.drop_table('daily_game_matches')
    op.drop_table('cycles')
    op.drop_table('fixture_results')
    op.drop_table('fixture_odds')
    op.drop_table('fixtures')
