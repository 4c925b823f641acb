"""create image_jobs table

Revision ID: 5c1e7f2a9b30
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c1e7f2a9b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'image_jobs',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('original_image_url', sa.String(length=1024), nullable=False),
        sa.Column('original_storage_key', sa.String(length=512), nullable=False),
        sa.Column('toonified_image_url', sa.String(length=1024), nullable=True),
        sa.Column('toonified_storage_key', sa.String(length=512), nullable=True),
        sa.Column('quality_tier', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('payment_session_id', sa.String(length=255), nullable=True),
        sa.Column('payment_status', sa.String(length=20), nullable=False),
        sa.Column('error_message', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_image_jobs_owner_id', 'image_jobs', ['owner_id'])
    op.create_index('ix_image_jobs_status', 'image_jobs', ['status'])


def downgrade():
    op.drop_index('ix_image_jobs_status', table_name='image_jobs')
    op.drop_index('ix_image_jobs_owner_id', table_name='image_jobs')
    op.drop_table('image_jobs')
