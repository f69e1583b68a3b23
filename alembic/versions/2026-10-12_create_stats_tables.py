"""Create users, rides and weekly_stats tables

Revision ID: 7f3a9c21d4e8
Revises: 
Create Date: 2026-10-12 19:04:11.512734

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '7f3a9c21d4e8'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('city', sa.String(), nullable=True),
        sa.Column('total_distance', sa.Float(), nullable=False, server_default='0'),
        sa.Column('distance_this_year', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_coins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('longest_ride_distance', sa.Float(), nullable=False, server_default='0'),
        sa.Column('longest_ride_time', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_elevation_gained', sa.Float(), nullable=False, server_default='0'),
        sa.Column('best_10km_time', sa.Float(), nullable=True),
        sa.Column('best_20km_time', sa.Float(), nullable=True),
        sa.Column('best_25km_time', sa.Float(), nullable=True),
        sa.Column('best_50km_time', sa.Float(), nullable=True),
        sa.Column('best_75km_time', sa.Float(), nullable=True),
        sa.Column('best_100km_time', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_city', 'users', ['city'])
    op.create_index('ix_users_total_coins', 'users', ['total_coins'])

    op.create_table(
        'rides',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('ride_name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=False),
        sa.Column('recorded_from', sa.String(), nullable=False),
        sa.Column('distance', sa.Float(), nullable=False),
        sa.Column('average_speed', sa.Float(), nullable=False),
        sa.Column('max_speed', sa.Float(), nullable=False),
        sa.Column('moving_time', sa.Integer(), nullable=False),
        sa.Column('elapsed_time', sa.Integer(), nullable=False),
        sa.Column('elevation_gained', sa.Float(), nullable=False),
        sa.Column('activity_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('coins_earned', sa.Integer(), nullable=False),
        sa.Column('gps_path', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('is_flagged', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_rides_user_id', 'rides', ['user_id'])
    op.create_index('ix_rides_is_flagged', 'rides', ['is_flagged'])
    op.create_index('ix_rides_user_activity_date', 'rides', ['user_id', 'activity_date'])

    op.create_table(
        'weekly_stats',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('iso_year', sa.Integer(), nullable=False),
        sa.Column('iso_week', sa.Integer(), nullable=False),
        sa.Column('total_distance', sa.Float(), nullable=False),
        sa.Column('total_rides', sa.Integer(), nullable=False),
        sa.Column('total_coins', sa.Integer(), nullable=False),
        sa.Column('total_moving_time', sa.Integer(), nullable=False),
        sa.Column('average_speed', sa.Float(), nullable=False),
        sa.Column('week_start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('week_end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'iso_year', 'iso_week', name='uq_weekly_stats_user_week'),
    )
    op.create_index('ix_weekly_stats_user_id', 'weekly_stats', ['user_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('weekly_stats')
    op.drop_table('rides')
    op.drop_table('users')
