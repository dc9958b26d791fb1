"""wig request workflow tables

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

revision = '20261019_01'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='requester'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'wig_requests',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('requester_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('evidence', sa.LargeBinary(), nullable=False),
        sa.Column('evidence_content_type', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_wig_requests_requester_id', 'wig_requests', ['requester_id'])
    op.create_index('ix_wig_requests_status', 'wig_requests', ['status'])

    op.create_table(
        'institution_analyses',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('request_id', sa.Integer(), sa.ForeignKey('wig_requests.id'), nullable=False),
        sa.Column('institution_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('request_id', 'institution_id', name='uq_analysis_request_institution'),
    )
    op.create_index('ix_institution_analyses_request_id', 'institution_analyses', ['request_id'])
    op.create_index('ix_institution_analyses_institution_id', 'institution_analyses', ['institution_id'])
    op.create_index('ix_institution_analyses_status', 'institution_analyses', ['status'])

    op.create_table(
        'wigs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('institution_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('wig_type', sa.String(), nullable=False),
        sa.Column('color', sa.String(), nullable=False),
        sa.Column('length_cm', sa.Float(), nullable=True),
        sa.Column('size', sa.String(length=1), nullable=False, server_default='M'),
        sa.Column('available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_wigs_institution_id', 'wigs', ['institution_id'])

    op.create_table(
        'donations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('wig_id', sa.Integer(), sa.ForeignKey('wigs.id'), nullable=False, unique=True),
        sa.Column('request_id', sa.Integer(), sa.ForeignKey('wig_requests.id'), nullable=False),
        sa.Column('institution_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('request_status_before', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_donations_request_id', 'donations', ['request_id'])
    op.create_index('ix_donations_institution_id', 'donations', ['institution_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false()),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String(), nullable=True),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )


def downgrade():
    op.drop_table('audit_logs')
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_donations_institution_id', table_name='donations')
    op.drop_index('ix_donations_request_id', table_name='donations')
    op.drop_table('donations')
    op.drop_index('ix_wigs_institution_id', table_name='wigs')
    op.drop_table('wigs')
    op.drop_index('ix_institution_analyses_status', table_name='institution_analyses')
    op.drop_index('ix_institution_analyses_institution_id', table_name='institution_analyses')
    op.drop_index('ix_institution_analyses_request_id', table_name='institution_analyses')
    op.drop_table('institution_analyses')
    op.drop_index('ix_wig_requests_status', table_name='wig_requests')
    op.drop_index('ix_wig_requests_requester_id', table_name='wig_requests')
    op.drop_table('wig_requests')
    op.drop_table('users')
