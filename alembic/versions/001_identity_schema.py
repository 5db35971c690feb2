"""Identity, credential, request and audit tables

Revision ID: 001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create identity, token_family, api_key, capability_request and audit_entry."""

    op.create_table('identity',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('provider_subject', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('base_role', sa.String(length=50), nullable=True),
        sa.Column('capabilities', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('login_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_identity'),
        sa.UniqueConstraint('provider', 'provider_subject', name='uq_identity_provider_subject'),
    )
    op.create_index('ix_identity_email', 'identity', ['email'], unique=True)
    op.create_index('ix_identity_status', 'identity', ['status'], unique=False)

    op.create_table('token_family',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('identity_id', sa.UUID(), nullable=False),
        sa.Column('current_jti', sa.String(length=64), nullable=False),
        sa.Column('rotation_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_reason', sa.String(length=50), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('last_rotated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.ForeignKeyConstraint(['identity_id'], ['identity.id'], name='fk_token_family_identity_id_identity'),
        sa.PrimaryKeyConstraint('id', name='pk_token_family'),
    )
    op.create_index('ix_token_family_identity_id', 'token_family', ['identity_id'], unique=False)
    op.create_index('idx_token_family_identity_revoked', 'token_family', ['identity_id', 'revoked'], unique=False)

    op.create_table('api_key',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('identity_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('key_prefix', sa.String(length=20), nullable=False),
        sa.Column('key_hash', sa.String(length=64), nullable=False),
        sa.Column('scopes', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('rate_limit_per_minute', sa.Integer(), nullable=False),
        sa.Column('rate_limit_per_day', sa.Integer(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('replaced_by_id', sa.UUID(), nullable=True),
        sa.ForeignKeyConstraint(['identity_id'], ['identity.id'], name='fk_api_key_identity_id_identity'),
        sa.PrimaryKeyConstraint('id', name='pk_api_key'),
    )
    op.create_index('ix_api_key_identity_id', 'api_key', ['identity_id'], unique=False)
    op.create_index('ix_api_key_key_hash', 'api_key', ['key_hash'], unique=True)

    op.create_table('capability_request',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('identity_id', sa.UUID(), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('requested_role', sa.String(length=50), nullable=True),
        sa.Column('requested_capabilities', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('granted_role', sa.String(length=50), nullable=True),
        sa.Column('granted_capabilities', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('justification', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('reviewer_id', sa.UUID(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decision_notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['identity_id'], ['identity.id'], name='fk_capability_request_identity_id_identity'),
        sa.ForeignKeyConstraint(['reviewer_id'], ['identity.id'], name='fk_capability_request_reviewer_id_identity'),
        sa.PrimaryKeyConstraint('id', name='pk_capability_request'),
    )
    op.create_index('ix_capability_request_identity_id', 'capability_request', ['identity_id'], unique=False)
    op.create_index('ix_capability_request_status', 'capability_request', ['status'], unique=False)
    op.create_index(
        'idx_capability_request_identity_status', 'capability_request', ['identity_id', 'status'], unique=False
    )

    op.create_table('audit_entry',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('actor_id', sa.UUID(), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('resource_type', sa.String(length=100), nullable=True),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('component', sa.String(length=100), nullable=False),
        sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('request_id', sa.String(length=100), nullable=True),
        sa.Column('auth_method', sa.String(length=30), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_audit_entry'),
    )
    op.create_index('ix_audit_entry_actor_id', 'audit_entry', ['actor_id'], unique=False)
    op.create_index('ix_audit_entry_action', 'audit_entry', ['action'], unique=False)
    op.create_index('ix_audit_entry_component', 'audit_entry', ['component'], unique=False)
    op.create_index('ix_audit_entry_timestamp', 'audit_entry', ['timestamp'], unique=False)
    op.create_index('idx_audit_entry_resource', 'audit_entry', ['resource_type', 'resource_id'], unique=False)


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('audit_entry')
    op.drop_table('capability_request')
    op.drop_table('api_key')
    op.drop_table('token_family')
    op.drop_table('identity')
