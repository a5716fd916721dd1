"""initial election schema

Revision ID: 0001
Revises:
Create Date: 2024-05-01 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

OTP_TABLES = ('otps', 'candidate_otps', 'admin_otps')


def upgrade():
    op.create_table(
        'users',
        sa.Column('telegram_id', sa.String(length=32), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=254), nullable=False, unique=True),
        sa.Column('matric_no', sa.String(length=32), nullable=False, unique=True),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    for table in OTP_TABLES:
        op.create_table(
            table,
            sa.Column('telegram_id', sa.String(length=32), sa.ForeignKey('users.telegram_id'), primary_key=True),
            sa.Column('code', sa.String(length=6), nullable=False),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
        )
    op.create_table(
        'user_states',
        sa.Column('telegram_id', sa.String(length=32), sa.ForeignKey('users.telegram_id'), primary_key=True),
        sa.Column('state', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'candidates',
        sa.Column('candidate_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('telegram_id', sa.String(length=32), sa.ForeignKey('users.telegram_id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('position', sa.String(length=64), nullable=False),
        sa.Column('picture', sa.String(length=255), nullable=True),
        sa.Column('manifesto', sa.String(length=500), nullable=True),
        sa.Column('is_approved', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('telegram_id', 'position', name='uq_candidate_user_position'),
    )
    op.create_table(
        'votes',
        sa.Column('vote_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('voter_telegram_id', sa.String(length=32), sa.ForeignKey('users.telegram_id'),
                  nullable=False, unique=True),
        sa.Column('candidate_id', sa.Integer(), sa.ForeignKey('candidates.candidate_id'), nullable=False),
        sa.Column('encrypted_vote', sa.Text(), nullable=False),
        sa.Column('cast_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'voting_period',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.CheckConstraint('start_date <= end_date', name='ck_voting_period_order'),
    )
    op.create_table(
        'campaign_window',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('candidate_id', sa.Integer(), sa.ForeignKey('candidates.candidate_id'), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ends_at', sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table('campaign_window')
    op.drop_table('voting_period')
    op.drop_table('votes')
    op.drop_table('candidates')
    op.drop_table('user_states')
    for table in reversed(OTP_TABLES):
        op.drop_table(table)
    op.drop_table('users')
