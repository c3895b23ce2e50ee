"""collection_schema

Revision ID: a1c3e5f70001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f70001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'data_sources',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False, comment='Display name'),
        sa.Column('source_type', sa.String(length=50), nullable=False),
        sa.Column('url', sa.Text(), nullable=False, comment='Index page URL'),
        sa.Column('state', sa.String(length=2), nullable=False),
        sa.Column('county', sa.String(length=100), nullable=True),
        sa.Column('collector_type', sa.String(length=100), nullable=False, comment='Registered collector id'),
        sa.Column('frequency', sa.String(length=20), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=True, comment='0=Sunday .. 6=Saturday'),
        sa.Column('day_of_month', sa.Integer(), nullable=True),
        sa.Column('metadata', JSONType, nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('last_collected', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_scheduled_run', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('active', 'inactive', 'error')", name='ck_data_sources_status'),
    )
    op.create_index('ix_data_sources_collector_type', 'data_sources', ['collector_type'], unique=False)
    op.create_index('ix_data_sources_status', 'data_sources', ['status'], unique=False)

    op.create_table(
        'collection_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('trigger', sa.String(length=20), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=False),
        sa.Column('item_count', sa.Integer(), nullable=False),
        sa.Column('success_count', sa.Integer(), nullable=False),
        sa.Column('error_count', sa.Integer(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('error_log', JSONType, nullable=False),
        sa.Column('property_ids', JSONType, nullable=False),
        sa.Column('raw_artifact_path', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['source_id'], ['data_sources.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('success', 'partial', 'error')", name='ck_collection_runs_status'),
    )
    op.create_index('idx_collection_runs_source_started', 'collection_runs', ['source_id', 'started_at'], unique=False)

    op.create_table(
        'properties',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('parcel_id', sa.String(length=64), nullable=False),
        sa.Column('tax_account_number', sa.String(length=64), nullable=True),
        sa.Column('owner_name', sa.String(length=255), nullable=True),
        sa.Column('property_address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=2), nullable=False),
        sa.Column('county', sa.String(length=100), nullable=False),
        sa.Column('zip_code', sa.String(length=10), nullable=True),
        sa.Column('property_type', sa.String(length=30), nullable=False),
        sa.Column('legal_description', sa.Text(), nullable=True),
        sa.Column('latitude', sa.Numeric(precision=10, scale=7), nullable=True),
        sa.Column('longitude', sa.Numeric(precision=10, scale=7), nullable=True),
        sa.Column('assessed_value', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('tax_due', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('tax_status', sa.String(length=20), nullable=False),
        sa.Column('sale_amount', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('property_details', JSONType, nullable=False),
        sa.Column('tax_info', JSONType, nullable=False),
        sa.Column('sale_info', JSONType, nullable=False),
        sa.Column('location', JSONType, nullable=False),
        sa.Column('raw_data', JSONType, nullable=False),
        sa.Column('processing_notes', JSONType, nullable=False),
        sa.Column('possible_duplicate_of', sa.String(length=64), nullable=True),
        sa.Column('source_id', sa.Integer(), nullable=False),
        sa.Column('collected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_source_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['source_id'], ['data_sources.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('parcel_id'),
    )
    op.create_index('idx_properties_state_county', 'properties', ['state', 'county'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_properties_state_county', table_name='properties')
    op.drop_table('properties')
    op.drop_index('idx_collection_runs_source_started', table_name='collection_runs')
    op.drop_table('collection_runs')
    op.drop_index('ix_data_sources_status', table_name='data_sources')
    op.drop_index('ix_data_sources_collector_type', table_name='data_sources')
    op.drop_table('data_sources')
