"""create user, puzzle and puzzle_history tables

Revision ID: 5c2d9e7a1b30
Revises:
Create Date: 2026-10-19 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2d9e7a1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('display_name', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'puzzle' not in existing_tables:
        op.create_table(
            'puzzle',
            sa.Column('id', sa.String(length=64), nullable=False),
            sa.Column('date', sa.String(length=10), nullable=True),
            sa.Column('title', sa.String(length=128), nullable=False),
            sa.Column('author', sa.String(length=128), nullable=False),
            sa.Column('difficulty', sa.String(length=16), nullable=False),
            sa.Column('grid', sa.Text(), nullable=False),
            sa.Column('clues_across', sa.Text(), nullable=True),
            sa.Column('clues_down', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_puzzle_date', 'puzzle', ['date'], unique=True)

    if 'puzzle_history' not in existing_tables:
        op.create_table(
            'puzzle_history',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('player_id', sa.String(length=64), nullable=False),
            sa.Column('puzzle_id', sa.String(length=64), nullable=True),
            sa.Column('room_code', sa.String(length=16), nullable=True),
            sa.Column('time_taken_seconds', sa.Integer(), nullable=False),
            sa.Column('move_count', sa.Integer(), nullable=False),
            sa.Column('hints_used', sa.Integer(), nullable=False),
            sa.Column('solved', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_puzzle_history_player_id', 'puzzle_history', ['player_id'], unique=False)


def downgrade():
    op.drop_index('ix_puzzle_history_player_id', table_name='puzzle_history')
    op.drop_table('puzzle_history')
    op.drop_index('ix_puzzle_date', table_name='puzzle')
    op.drop_table('puzzle')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
