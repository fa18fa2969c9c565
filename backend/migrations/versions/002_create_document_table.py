"""Create document table

Revision ID: 002
Revises: 001
Create Date: 2026-10-17 09:05:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'document',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('document_type_id', sa.Integer(), nullable=False),
        sa.Column('lineage_root_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('lineage_key', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('version', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.Column('is_current_version', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('content_hash', sa.Text(), nullable=True),
        sa.Column('blob_path', sa.Text(), nullable=False),
        sa.Column('mime_type', sa.Text(), nullable=True),
        sa.Column('file_size_bytes', sa.BigInteger(), nullable=True),
        sa.Column('original_file_name', sa.Text(), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', sa.Text(), nullable=True),
        sa.Column('tags', sa.Text(), nullable=True),
        sa.Column('search_index_id', sa.Text(), nullable=True),
        sa.Column('last_indexed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.Text(), nullable=True),
        sa.Column('deleted_reason', sa.Text(), nullable=True),
        sa.Column('is_archived', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('archived_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('updated_by', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['document_type_id'], ['document_type.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lineage_key', 'version', name='uq_document_lineage_version'),
        sa.CheckConstraint('version > 0', name='ck_document_version_positive')
    )

    # At most one current version per lineage
    op.create_index(
        'uq_document_current_per_lineage',
        'document',
        ['lineage_key'],
        unique=True,
        postgresql_where=sa.text('is_current_version')
    )

    op.create_index('ix_document_tenant_id', 'document', ['tenant_id'])
    op.create_index('ix_document_document_type_id', 'document', ['document_type_id'])

    # Query patterns: indexing readiness and duplicate lookup
    op.create_index('ix_document_tenant_indexing', 'document', ['tenant_id', 'last_indexed_at', 'updated_at'])
    op.create_index('ix_document_tenant_content_hash', 'document', ['tenant_id', 'content_hash'])


def downgrade():
    op.drop_index('ix_document_tenant_content_hash', table_name='document')
    op.drop_index('ix_document_tenant_indexing', table_name='document')
    op.drop_index('ix_document_document_type_id', table_name='document')
    op.drop_index('ix_document_tenant_id', table_name='document')
    op.drop_index('uq_document_current_per_lineage', table_name='document')
    op.drop_table('document')
