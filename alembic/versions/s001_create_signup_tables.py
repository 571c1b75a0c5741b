"""Create events, event_instances, signups and notifications tables

Revision ID: s001_create_signup_tables
Revises:
Create Date: 2026-10-18

This migration creates the signup schema:
- events with scheduled publishing
- event_instances with per-role capacity and waitlist flag
- signups (one row per instance and user)
- notifications (in-app inbox)
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 's001_create_signup_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'events',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(80), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='DRAFT'),
        sa.Column('scheduled_publish_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_events_status_publish', 'events', ['status', 'scheduled_publish_date'])

    op.create_table(
        'event_instances',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('event_id', sa.String(), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),

        # Capacity per role pool
        sa.Column('student_capacity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('parent_capacity', sa.Integer(), nullable=False, server_default='0'),

        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('waitlist_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),

        sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(), nullable=True),

        sa.CheckConstraint('student_capacity >= 0', name='check_student_capacity_positive'),
        sa.CheckConstraint('parent_capacity >= 0', name='check_parent_capacity_positive'),
    )
    op.create_index('idx_event_instances_status_start', 'event_instances', ['status', 'enabled', 'start_date'])

    op.create_table(
        'signups',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('instance_id', sa.String(), sa.ForeignKey('event_instances.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('event_id', sa.String(), sa.ForeignKey('events.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(), nullable=False, index=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='CONFIRMED'),
        sa.Column('signup_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('waitlist_notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),

        # One signup row per user per instance (CANCELLED rows are revived in place)
        sa.UniqueConstraint('instance_id', 'user_id', name='unique_instance_signup_user'),
    )
    op.create_index('idx_signups_instance_role_status', 'signups', ['instance_id', 'role', 'status'])
    op.create_index(
        'idx_signups_pending_notified',
        'signups',
        ['waitlist_notified_at'],
        postgresql_where=sa.text("status = 'WAITLIST_PENDING'"),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), nullable=False, index=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('type', sa.String(20), nullable=False, server_default='INFO'),
        sa.Column('instance_id', sa.String(), sa.ForeignKey('event_instances.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('event_id', sa.String(), sa.ForeignKey('events.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('notifications')

    op.drop_index('idx_signups_pending_notified', table_name='signups')
    op.drop_index('idx_signups_instance_role_status', table_name='signups')
    op.drop_table('signups')

    op.drop_index('idx_event_instances_status_start', table_name='event_instances')
    op.drop_table('event_instances')

    op.drop_index('idx_events_status_publish', table_name='events')
    op.drop_table('events')
