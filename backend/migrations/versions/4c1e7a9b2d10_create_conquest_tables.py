"""create user, territory, run and run_path_point tables

Revision ID: 4c1e7a9b2d10
Revises:
Create Date: 2026-09-14 10:12:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1e7a9b2d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('display_name', sa.String(length=64), nullable=True),
        sa.Column('color', sa.String(length=7), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'territory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('owner_display_name', sa.String(length=64), nullable=False),
        sa.Column('owner_color', sa.String(length=7), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('area_square_meters', sa.Float(), nullable=False),
        sa.Column('geometry', sa.LargeBinary(), nullable=False),
        sa.Column('min_lng', sa.Float(), nullable=False),
        sa.Column('min_lat', sa.Float(), nullable=False),
        sa.Column('max_lng', sa.Float(), nullable=False),
        sa.Column('max_lat', sa.Float(), nullable=False),
        sa.Column('captured_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_territory_owner_id', 'territory', ['owner_id'])
    op.create_index('ix_territory_bbox', 'territory', ['min_lng', 'max_lng', 'min_lat', 'max_lat'])

    op.create_table(
        'run',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('territory_id', sa.Integer(), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('distance', sa.Float(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('average_pace', sa.Float(), nullable=False),
        sa.Column('max_speed', sa.Float(), nullable=True),
        sa.Column('elevation_gain', sa.Float(), nullable=True),
        sa.Column('calories', sa.Integer(), nullable=True),
        sa.Column('caption', sa.String(length=280), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['territory_id'], ['territory.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_run_user_id', 'run', ['user_id'])

    op.create_table(
        'run_path_point',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.Integer(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('sequence_order', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['run_id'], ['run.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_run_path_point_run_id', 'run_path_point', ['run_id'])


def downgrade():
    op.drop_index('ix_run_path_point_run_id', table_name='run_path_point')
    op.drop_table('run_path_point')
    op.drop_index('ix_run_user_id', table_name='run')
    op.drop_table('run')
    op.drop_index('ix_territory_bbox', table_name='territory')
    op.drop_index('ix_territory_owner_id', table_name='territory')
    op.drop_table('territory')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
