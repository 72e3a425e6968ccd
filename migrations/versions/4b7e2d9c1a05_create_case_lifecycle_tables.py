"""create case lifecycle tables

Revision ID: 4b7e2d9c1a05
Revises:
Create Date: 2026-10-19 09:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4b7e2d9c1a05'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CASE_STATUS = ('draft', 'working', 'revised', 'ready', 'released', 'closed')
AUDIT_EVENT_TYPES = (
    'CASE_CREATED', 'CONTENT_SAVED', 'ASSESSMENT_SAVED', 'CASE_MARKED_READY',
    'CASE_RELEASED', 'REVISION_CREATED', 'CASE_CLOSED', 'INTEGRITY_WARNING',
    'RN_ASSIGNED_TO_CASE', 'RN_ACCEPTED_ASSIGNMENT', 'RN_DECLINED_ASSIGNMENT',
)


def upgrade() -> None:
    """Create case records, active pointers, audit events and care plans."""
    op.create_table('rc_cases',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('lineage_id', sa.Uuid(), nullable=False),
        sa.Column('parent_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.Enum(*CASE_STATUS, name='case_status'), nullable=False),
        sa.Column('is_superseded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('released_at', sa.DateTime(), nullable=True),
        sa.Column('released_by', sa.String(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('content', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['parent_id'], ['rc_cases.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rc_cases_lineage_id'), 'rc_cases', ['lineage_id'], unique=False)
    op.create_index(op.f('ix_rc_cases_parent_id'), 'rc_cases', ['parent_id'], unique=False)

    op.create_table('rc_active_cases',
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('case_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['case_id'], ['rc_cases.id']),
        sa.PrimaryKeyConstraint('user_id')
    )

    op.create_table('rc_audit_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('case_id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.Enum(*AUDIT_EVENT_TYPES, name='audit_event_type'), nullable=False),
        sa.Column('actor_id', sa.String(), nullable=True),
        sa.Column('detail', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rc_audit_events_case_id'), 'rc_audit_events', ['case_id'], unique=False)

    op.create_table('rc_care_plans',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('case_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.Enum('draft', 'submitted', name='care_plan_status'), nullable=False),
        sa.Column('follow_up_interval_days', sa.Integer(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('submitted_by', sa.String(), nullable=True),
        sa.Column('next_due_at', sa.DateTime(), nullable=True),
        sa.Column('plan', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['case_id'], ['rc_cases.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rc_care_plans_case_id'), 'rc_care_plans', ['case_id'], unique=False)


def downgrade() -> None:
    """Drop the case lifecycle tables and their enum types."""
    op.drop_index(op.f('ix_rc_care_plans_case_id'), table_name='rc_care_plans')
    op.drop_table('rc_care_plans')
    op.drop_index(op.f('ix_rc_audit_events_case_id'), table_name='rc_audit_events')
    op.drop_table('rc_audit_events')
    op.drop_table('rc_active_cases')
    op.drop_index(op.f('ix_rc_cases_parent_id'), table_name='rc_cases')
    op.drop_index(op.f('ix_rc_cases_lineage_id'), table_name='rc_cases')
    op.drop_table('rc_cases')
    sa.Enum(name='care_plan_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='audit_event_type').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='case_status').drop(op.get_bind(), checkfirst=True)
