# backend/alembic/versions/001_initial_migration.py
"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'github_apps',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column('app_id', sa.BigInteger, nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('owner_login', sa.String(255)),
        sa.Column('owner_type', sa.String(32)),
        sa.Column('client_id', sa.String(255)),
        sa.Column('html_url', sa.String(1024)),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'installations',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column('github_app_id', sa.String(26), sa.ForeignKey('github_apps.id')),
        sa.Column('installation_id', sa.BigInteger, nullable=False, unique=True),
        sa.Column('account_login', sa.String(255), nullable=False),
        sa.Column('account_type', sa.String(32)),
        sa.Column('account_id', sa.BigInteger),
        sa.Column('repository_selection', sa.String(16), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "repository_selection IN ('all', 'selected')",
            name='installations_repository_selection_check',
        ),
    )
    op.create_index('ix_installations_github_app_id', 'installations', ['github_app_id'])

    op.create_table(
        'gitlab_credentials',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column('instance_url', sa.String(1024), nullable=False, unique=True),
        sa.Column('user_id', sa.BigInteger),
        sa.Column('username', sa.String(255)),
        sa.Column('token_expires_at', sa.DateTime),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'repositories',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column('provider', sa.String(16), nullable=False),
        sa.Column('provider_repo_id', sa.String(64), nullable=False),
        sa.Column('owner', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('clone_url', sa.String(1024)),
        sa.Column('default_branch', sa.String(255), nullable=False),
        sa.Column('installation_id', sa.String(26), sa.ForeignKey('installations.id')),
        sa.Column('gitlab_credential_id', sa.String(26), sa.ForeignKey('gitlab_credentials.id')),
        sa.Column('webhook_token_hmac', sa.String(64)),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('provider', 'provider_repo_id', name='uq_repositories_provider_repo'),
        sa.CheckConstraint("provider IN ('github', 'gitlab')", name='repositories_provider_check'),
    )
    op.create_index('ix_repositories_installation_id', 'repositories', ['installation_id'])
    op.create_index('ix_repositories_gitlab_credential_id', 'repositories', ['gitlab_credential_id'])

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column('provider', sa.String(16), nullable=False),
        sa.Column('delivery_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('payload', sa.LargeBinary, nullable=False),
        sa.Column('repository_id', sa.String(26), sa.ForeignKey('repositories.id')),
        sa.Column('received_at', sa.DateTime, nullable=False),
        sa.Column('claimed_at', sa.DateTime),
        sa.Column('processed', sa.Boolean, nullable=False),
        sa.Column('processed_at', sa.DateTime),
        sa.Column('note', sa.Text),
        sa.Column('error_message', sa.Text),
        sa.UniqueConstraint('provider', 'delivery_id', name='uq_webhook_events_provider_delivery'),
        sa.CheckConstraint("provider IN ('github', 'gitlab')", name='webhook_events_provider_check'),
    )
    op.create_index('ix_webhook_events_repository_id', 'webhook_events', ['repository_id'])
    op.create_index('ix_webhook_events_unprocessed', 'webhook_events', ['processed', 'claimed_at'])

    op.create_table(
        'builds',
        sa.Column('id', sa.String(26), primary_key=True),
        sa.Column('repository_id', sa.String(26), sa.ForeignKey('repositories.id'), nullable=False),
        sa.Column('webhook_event_id', sa.String(26), sa.ForeignKey('webhook_events.id'), unique=True),
        sa.Column('branch', sa.String(255), nullable=False),
        sa.Column('commit_sha', sa.String(64), nullable=False),
        sa.Column('trigger_type', sa.String(20), nullable=False),
        sa.Column('pull_request_number', sa.Integer),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('started_at', sa.DateTime),
        sa.Column('finished_at', sa.DateTime),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'success', 'failure', 'cancelled')",
            name='builds_status_check',
        ),
        sa.CheckConstraint(
            "trigger_type IN ('push', 'pull_request', 'manual')",
            name='builds_trigger_type_check',
        ),
    )
    op.create_index('ix_builds_repository_id', 'builds', ['repository_id'])
    op.create_index('ix_builds_status', 'builds', ['status'])

    op.create_table(
        'setup_sessions',
        sa.Column('state', sa.String(128), primary_key=True),
        sa.Column('provider', sa.String(16), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('instance_url', sa.String(1024)),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('expires_at', sa.DateTime, nullable=False),
        sa.Column('consumed_at', sa.DateTime),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('message', sa.Text),
        sa.Column('result_ref', sa.String(26)),
        sa.Column('account_name', sa.String(255)),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed', 'expired')",
            name='setup_sessions_status_check',
        ),
    )

    op.create_table(
        'stored_credentials',
        sa.Column('key', sa.String(255), primary_key=True),
        sa.Column('ciphertext', sa.Text, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'sync_leases',
        sa.Column('account_key', sa.String(255), primary_key=True),
        sa.Column('holder', sa.String(26), nullable=False),
        sa.Column('acquired_at', sa.DateTime, nullable=False),
        sa.Column('expires_at', sa.DateTime, nullable=False),
        *_timestamps(),
    )


def downgrade() -> None:
    for table in (
        'sync_leases',
        'stored_credentials',
        'setup_sessions',
        'builds',
        'webhook_events',
        'repositories',
        'gitlab_credentials',
        'installations',
        'github_apps',
    ):
        op.drop_table(table)
