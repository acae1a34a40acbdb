"""Initial schema - concepts, workflows, verdict cache, activity log

Revision ID: 0001
Revises: 
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Concept catalog
    op.create_table(
        'learning_nodes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('topic_id', sa.Integer(), nullable=False, index=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('normalized_title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('icon', sa.String(32), nullable=False),
        sa.Column('color', sa.String(16), nullable=False),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_learning_nodes_topic_title', 'learning_nodes', ['topic_id', 'normalized_title'], unique=True)

    # Saved learning paths
    op.create_table(
        'workflows',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('topic_id', sa.Integer(), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=True, index=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_draft', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('node_positions', sa.JSON(), nullable=False),
        sa.Column('forked_from_id', sa.Uuid(), sa.ForeignKey('workflows.id', ondelete='SET NULL'), nullable=True),
        sa.Column('publish_status', sa.String(20), nullable=False, server_default='not_published'),
        sa.Column('star_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('published_event_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('publish_claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'workflow_edges',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('workflow_id', sa.Uuid(), sa.ForeignKey('workflows.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('source_node_id', sa.Uuid(), sa.ForeignKey('learning_nodes.id'), nullable=False),
        sa.Column('target_node_id', sa.Uuid(), sa.ForeignKey('learning_nodes.id'), nullable=False),
        sa.Column('validation_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('validation_reason', sa.Text(), nullable=True),
        sa.Column('recommendation', sa.Text(), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('workflow_id', 'source_node_id', 'target_node_id', name='uq_workflow_edges_pair'),
    )

    op.create_table(
        'workflow_stars',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('workflow_id', sa.Uuid(), sa.ForeignKey('workflows.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('workflow_id', 'user_id', name='uq_workflow_stars_user'),
    )

    # Prerequisite verdict cache, keyed by the ordered title pair
    op.create_table(
        'node_pair_validations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('source_name', sa.String(255), nullable=False),
        sa.Column('target_name', sa.String(255), nullable=False),
        sa.Column('is_valid', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False, server_default=''),
        sa.Column('recommendation', sa.Text(), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('source_name', 'target_name', name='uq_node_pair_validations_pair'),
    )

    # Event log (append-only)
    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_entity', 'event_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_event_logs_type_time', 'event_logs', ['event_type', 'created_at'])


def downgrade() -> None:
    op.drop_table('event_logs')
    op.drop_table('node_pair_validations')
    op.drop_table('workflow_stars')
    op.drop_table('workflow_edges')
    op.drop_table('workflows')
    op.drop_table('learning_nodes')
