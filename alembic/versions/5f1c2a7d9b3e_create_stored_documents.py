"""Create stored_documents table.

Revision ID: 5f1c2a7d9b3e
Revises:
Create Date: 2026-10-19

One row per uploaded document slot, holding the blob path and the latest
compliance-check result.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '5f1c2a7d9b3e'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create stored_documents table."""
    op.create_table(
        'stored_documents',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_ref', postgresql.UUID(as_uuid=True), nullable=False,
                  comment='Enclosing application'),
        sa.Column('document_key', sa.String(), nullable=False,
                  comment='Document slot, e.g. employment_rules'),
        sa.Column('storage_path', sa.String(), nullable=False,
                  comment='{owner_ref}/{document_key}/{unix_ms}.{ext}'),
        sa.Column('mime_type', sa.String(), nullable=False, server_default='application/pdf'),
        sa.Column('byte_size', sa.BigInteger(), nullable=False),
        sa.Column('original_file_name', sa.String(), nullable=False),

        # Lifecycle
        sa.Column('upload_status', sa.String(), nullable=False, server_default='completed',
                  comment='pending | uploading | completed | error'),
        sa.Column('ai_check_status', sa.String(), nullable=False, server_default='not_checked',
                  comment='not_checked | checked'),

        # Latest compliance check
        sa.Column('ai_check_result', postgresql.JSONB(), nullable=True),
        sa.Column('ai_check_score', sa.Integer(), nullable=True),
        sa.Column('ai_checked_at', sa.TIMESTAMP(timezone=True), nullable=True),

        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),

        sa.UniqueConstraint('owner_ref', 'document_key', name='uq_stored_documents_owner_key'),
        sa.UniqueConstraint('storage_path', name='uq_stored_documents_storage_path'),
    )

    op.create_index('ix_stored_documents_owner_ref', 'stored_documents', ['owner_ref'])


def downgrade() -> None:
    """Drop stored_documents table."""
    op.drop_index('ix_stored_documents_owner_ref', table_name='stored_documents')
    op.drop_table('stored_documents')
