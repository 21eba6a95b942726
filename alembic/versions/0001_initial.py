from alembic import op
import sqlalchemy as sa

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'feedback_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
        sa.Column('source', sa.String(32), nullable=False, index=True),
        sa.Column('source_id', sa.String(128)),
        sa.Column('customer_id', sa.String(128)),
        sa.Column('customer_name', sa.String(256)),
        sa.Column('customer_email', sa.String(256)),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('title', sa.String(512)),
        sa.Column('rating', sa.Integer),
        sa.Column('language', sa.String(10), nullable=False, server_default='en'),
        sa.Column('metadata', sa.JSON),
        sa.Column('original_data', sa.JSON),
        sa.Column('sentiment', sa.String(16), index=True),
        sa.Column('sentiment_score', sa.Float),
        sa.Column('urgency', sa.String(16), index=True),
        sa.Column('categories', sa.JSON),
        sa.Column('emotions', sa.JSON),
        sa.Column('processing_status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_error', sa.String(512)),
        sa.Column('next_attempt_at', sa.DateTime),
        sa.Column('lease_owner', sa.String(64)),
        sa.Column('lease_expires_at', sa.DateTime),
        sa.Column('enqueued_at', sa.DateTime),
        sa.Column('classified_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, index=True),
        sa.Column('updated_at', sa.DateTime, nullable=False, index=True),
        sa.CheckConstraint('rating IS NULL OR (rating >= 1 AND rating <= 5)', name='ck_feedback_rating_range'),
        sa.CheckConstraint('sentiment_score IS NULL OR (sentiment_score >= -1 AND sentiment_score <= 1)', name='ck_feedback_score_range'),
    )
    op.create_index('ux_feedback_source_source_id', 'feedback_records', ['source', 'source_id'], unique=True)
    op.create_index('ix_feedback_tenant_created', 'feedback_records', ['tenant_id', 'created_at'])
    op.create_index('ix_feedback_status_updated', 'feedback_records', ['processing_status', 'updated_at'])
    op.create_index('ix_feedback_status_lease', 'feedback_records', ['processing_status', 'lease_expires_at'])

    op.create_table(
        'integrations',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
        sa.Column('provider', sa.String(32), nullable=False, index=True),
        sa.Column('name', sa.String(128)),
        sa.Column('webhook_secret', sa.String(1024)),
        sa.Column('active', sa.Integer, nullable=False, server_default='1', index=True),
        sa.Column('created_at', sa.DateTime, nullable=False, index=True),
    )
    op.create_index('ux_integration_tenant_provider', 'integrations', ['tenant_id', 'provider'], unique=True)


def downgrade():
    op.drop_index('ux_integration_tenant_provider', table_name='integrations')
    op.drop_table('integrations')
    op.drop_index('ix_feedback_status_lease', table_name='feedback_records')
    op.drop_index('ix_feedback_status_updated', table_name='feedback_records')
    op.drop_index('ix_feedback_tenant_created', table_name='feedback_records')
    op.drop_index('ux_feedback_source_source_id', table_name='feedback_records')
    op.drop_table('feedback_records')
