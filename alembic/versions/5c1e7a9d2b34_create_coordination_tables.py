"""create_coordination_tables

Revision ID: 5c1e7a9d2b34
Revises:
Create Date: 2026-10-19 09:12:27.418203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '5c1e7a9d2b34'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _jsonb():
    return postgresql.JSONB(astext_type=sa.Text())


def upgrade() -> None:
    """Upgrade schema."""
    # agent_messages
    op.create_table('agent_messages',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('case_id', sa.UUID(), nullable=False),
    sa.Column('from_agent', sa.String(length=100), nullable=False),
    sa.Column('to_agent', sa.String(length=100), nullable=False),
    sa.Column('message_type', sa.String(length=50), nullable=False),
    sa.Column('priority', sa.String(length=20), nullable=False, server_default='normal'),
    sa.Column('subject', sa.Text(), nullable=False),
    sa.Column('payload', _jsonb(), nullable=False, server_default='{}'),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
    sa.Column('correlation_id', sa.UUID(), nullable=True),
    sa.Column('response', _jsonb(), nullable=True),
    sa.Column('failure_reason', sa.Text(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('delivered_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('acknowledged_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_agent_messages_case', 'agent_messages', ['case_id'])
    op.create_index('idx_agent_messages_to', 'agent_messages', ['to_agent', 'status'])
    op.create_index('idx_agent_messages_correlation', 'agent_messages', ['correlation_id'])

    # agent_dependencies
    op.create_table('agent_dependencies',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('case_id', sa.UUID(), nullable=False),
    sa.Column('source_agent', sa.String(length=100), nullable=False),
    sa.Column('target_agent', sa.String(length=100), nullable=False),
    sa.Column('dependency_type', sa.String(length=50), nullable=False),
    sa.Column('source_entity_type', sa.String(length=50), nullable=False),
    sa.Column('source_entity_id', sa.UUID(), nullable=False),
    sa.Column('target_entity_type', sa.String(length=50), nullable=True),
    sa.Column('target_entity_id', sa.UUID(), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
    sa.Column('resolution_data', _jsonb(), nullable=True),
    sa.Column('status_reason', sa.Text(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('resolved_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_agent_dependencies_case', 'agent_dependencies', ['case_id'])
    op.create_index('idx_agent_dependencies_target', 'agent_dependencies', ['target_agent', 'status'])
    op.create_index('idx_agent_dependencies_source', 'agent_dependencies', ['source_entity_type', 'source_entity_id'])

    # collaborative_tasks
    op.create_table('collaborative_tasks',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('case_id', sa.UUID(), nullable=False),
    sa.Column('task_name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('orchestrator_agent', sa.String(length=100), nullable=False),
    sa.Column('participating_agents', _jsonb(), nullable=False),
    sa.Column('dependencies', _jsonb(), nullable=False, server_default='[]'),
    sa.Column('progress', _jsonb(), nullable=False, server_default='{}'),
    sa.Column('results', _jsonb(), nullable=False, server_default='{}'),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='initialized'),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_collaborative_tasks_case', 'collaborative_tasks', ['case_id'])
    op.create_index('idx_collaborative_tasks_status', 'collaborative_tasks', ['status'])

    # workflow_definitions
    op.create_table('workflow_definitions',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('entity_type', sa.String(length=50), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('mode', sa.String(length=20), nullable=False),
    sa.Column('steps', _jsonb(), nullable=False),
    sa.Column('auto_approve_conditions', _jsonb(), nullable=True),
    sa.Column('case_id', sa.UUID(), nullable=True, comment='Set for case-specific definitions'),
    sa.Column('is_system_workflow', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_workflow_definitions_entity', 'workflow_definitions', ['entity_type', 'active'])

    # workflow_instances
    op.create_table('workflow_instances',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('case_id', sa.UUID(), nullable=False),
    sa.Column('workflow_definition_id', sa.UUID(), nullable=False),
    sa.Column('entity_type', sa.String(length=50), nullable=False),
    sa.Column('entity_id', sa.UUID(), nullable=False),
    sa.Column('entity_title', sa.String(length=500), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
    sa.Column('current_step', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('initiated_by', sa.String(length=100), nullable=False),
    sa.Column('initiated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('auto_approved', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('metadata', _jsonb(), nullable=True),
    sa.ForeignKeyConstraint(['workflow_definition_id'], ['workflow_definitions.id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_workflow_instances_case', 'workflow_instances', ['case_id'])
    op.create_index('idx_workflow_instances_entity', 'workflow_instances', ['entity_type', 'entity_id'])
    op.create_index('idx_workflow_instances_status', 'workflow_instances', ['status'])

    # approval_requests
    op.create_table('approval_requests',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('workflow_instance_id', sa.UUID(), nullable=False),
    sa.Column('step_number', sa.Integer(), nullable=False),
    sa.Column('approver_id', sa.String(length=100), nullable=False),
    sa.Column('original_approver_id', sa.String(length=100), nullable=True, comment='First assignee when the request was delegated'),
    sa.Column('required', sa.Boolean(), nullable=False, server_default='true'),
    sa.Column('can_delegate', sa.Boolean(), nullable=False, server_default='false', comment='Copied from the step definition'),
    sa.Column('deadline', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('resolved_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['workflow_instance_id'], ['workflow_instances.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_approval_requests_approver', 'approval_requests', ['approver_id', 'status'])
    op.create_index('idx_approval_requests_instance', 'approval_requests', ['workflow_instance_id', 'step_number'])
    op.create_index('idx_approval_requests_deadline', 'approval_requests', ['deadline'])
    op.create_index(
        'uq_approval_requests_pending_approver',
        'approval_requests',
        ['workflow_instance_id', 'approver_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    # approval_actions
    op.create_table('approval_actions',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('workflow_instance_id', sa.UUID(), nullable=False),
    sa.Column('step_number', sa.Integer(), nullable=False),
    sa.Column('actor_id', sa.String(length=100), nullable=False),
    sa.Column('action', sa.String(length=30), nullable=False),
    sa.Column('delegated_to', sa.String(length=100), nullable=True),
    sa.Column('comments', sa.Text(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['workflow_instance_id'], ['workflow_instances.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_approval_actions_instance', 'approval_actions', ['workflow_instance_id'])
    op.create_index('idx_approval_actions_actor', 'approval_actions', ['actor_id'])

    # red_flag_patterns
    op.create_table('red_flag_patterns',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('category', sa.String(length=50), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('severity', sa.String(length=20), nullable=False),
    sa.Column('conditions', _jsonb(), nullable=False),
    sa.Column('escalation_rules', _jsonb(), nullable=False),
    sa.Column('metadata', _jsonb(), nullable=True),
    sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name', name='uq_red_flag_patterns_name')
    )
    op.create_index('idx_red_flag_patterns_active', 'red_flag_patterns', ['active'])

    # red_flag_instances
    op.create_table('red_flag_instances',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('case_id', sa.UUID(), nullable=False),
    sa.Column('pattern_id', sa.UUID(), nullable=False),
    sa.Column('finding_id', sa.UUID(), nullable=True),
    sa.Column('severity', sa.String(length=20), nullable=False),
    sa.Column('title', sa.String(length=500), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('detected_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('status', sa.String(length=30), nullable=False, server_default='open'),
    sa.Column('assigned_to', sa.String(length=100), nullable=True),
    sa.Column('escalation_level', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('last_escalated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('sla_deadline', sa.TIMESTAMP(timezone=True), nullable=False),
    sa.Column('is_overdue', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('mitigation_plan', sa.Text(), nullable=True),
    sa.Column('resolution_notes', sa.Text(), nullable=True),
    sa.Column('resolved_by', sa.String(length=100), nullable=True),
    sa.Column('resolved_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('supporting_findings', _jsonb(), nullable=False, server_default='[]'),
    sa.Column('impact_assessment', _jsonb(), nullable=True),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['pattern_id'], ['red_flag_patterns.id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_red_flag_instances_case', 'red_flag_instances', ['case_id'])
    op.create_index('idx_red_flag_instances_status', 'red_flag_instances', ['status'])
    op.create_index('idx_red_flag_instances_overdue', 'red_flag_instances', ['is_overdue', 'sla_deadline'])

    # escalation_history
    op.create_table('escalation_history',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('red_flag_id', sa.UUID(), nullable=False),
    sa.Column('escalation_level', sa.Integer(), nullable=False),
    sa.Column('escalated_to_role', sa.String(length=100), nullable=False),
    sa.Column('escalated_to_user', sa.String(length=100), nullable=True),
    sa.Column('action_taken', sa.String(length=50), nullable=False),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['red_flag_id'], ['red_flag_instances.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_escalation_history_red_flag', 'escalation_history', ['red_flag_id'])

    # case_access
    op.create_table('case_access',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('case_id', sa.UUID(), nullable=False),
    sa.Column('user_id', sa.String(length=100), nullable=False),
    sa.Column('role', sa.String(length=50), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('case_id', 'user_id', 'role', name='uq_case_access_member_role')
    )
    op.create_index('idx_case_access_role', 'case_access', ['case_id', 'role'])

    # audit_entries
    op.create_table('audit_entries',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('case_id', sa.UUID(), nullable=True),
    sa.Column('actor', sa.String(length=100), nullable=False),
    sa.Column('action_type', sa.String(length=100), nullable=False),
    sa.Column('details', _jsonb(), nullable=False, server_default='{}'),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_audit_entries_case', 'audit_entries', ['case_id', 'created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('audit_entries')
    op.drop_table('case_access')
    op.drop_table('escalation_history')
    op.drop_table('red_flag_instances')
    op.drop_table('red_flag_patterns')
    op.drop_table('approval_actions')
    op.drop_table('approval_requests')
    op.drop_table('workflow_instances')
    op.drop_table('workflow_definitions')
    op.drop_table('collaborative_tasks')
    op.drop_table('agent_dependencies')
    op.drop_table('agent_messages')
