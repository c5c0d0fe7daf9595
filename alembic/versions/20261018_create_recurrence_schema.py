"""Create care item and recurrence tables

Revision ID: 3f7a1c2e9b40
Revises:
Create Date: 2026-10-18

Tables:
- care_items: tasks and appointments, with series_parent_id for generated occurrences
- item_contacts, item_documents: links copied onto each new occurrence
- recurrence_rules: one flat rule row per series parent, with its counters
- materialized_occurrences: ledger unique on (parent_item_id, anchor_date)
- completion_events: completion queue unique on (parent_item_id, anchor_date)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from care_recurrence.models.base import GUID


# revision identifiers, used by Alembic.
revision: str = '3f7a1c2e9b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list:
    return [
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table('care_items',
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('group_id', GUID(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('location', sa.String(length=200), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('primary_owner_id', GUID(), nullable=True),
        sa.Column('secondary_owner_id', GUID(), nullable=True),
        sa.Column('created_by_user_id', GUID(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_by_user_id', GUID(), nullable=True),
        sa.Column('series_parent_id', GUID(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['series_parent_id'], ['care_items.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('care_items', schema=None) as batch_op:
        batch_op.create_index('idx_item_group', ['group_id'], unique=False)
        batch_op.create_index('idx_item_due_date', ['due_date'], unique=False)
        batch_op.create_index('idx_item_status', ['status'], unique=False)
        batch_op.create_index('idx_item_series_parent', ['series_parent_id'], unique=False)
        batch_op.create_index('idx_item_deleted', ['deleted_at'], unique=False)

    op.create_table('item_contacts',
        sa.Column('item_id', GUID(), nullable=False),
        sa.Column('contact_id', GUID(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['item_id'], ['care_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_id', 'contact_id', name='uq_item_contact')
    )
    with op.batch_alter_table('item_contacts', schema=None) as batch_op:
        batch_op.create_index('idx_item_contact_item', ['item_id'], unique=False)

    op.create_table('item_documents',
        sa.Column('item_id', GUID(), nullable=False),
        sa.Column('document_id', GUID(), nullable=False),
        sa.Column('created_by_user_id', GUID(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['item_id'], ['care_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_id', 'document_id', name='uq_item_document')
    )
    with op.batch_alter_table('item_documents', schema=None) as batch_op:
        batch_op.create_index('idx_item_document_item', ['item_id'], unique=False)

    op.create_table('recurrence_rules',
        sa.Column('parent_item_id', GUID(), nullable=False),
        sa.Column('group_id', GUID(), nullable=False),
        sa.Column('created_by_user_id', GUID(), nullable=True),
        sa.Column('pattern_type', sa.String(length=20), nullable=False),
        sa.Column('interval_value', sa.Integer(), nullable=False),
        sa.Column('weekly_days', sa.JSON(), nullable=True),
        sa.Column('monthly_day_of_month', sa.Integer(), nullable=True),
        sa.Column('monthly_nth_weekday', sa.Integer(), nullable=True),
        sa.Column('monthly_weekday', sa.Integer(), nullable=True),
        sa.Column('yearly_month', sa.Integer(), nullable=True),
        sa.Column('yearly_day', sa.Integer(), nullable=True),
        sa.Column('end_type', sa.String(length=30), nullable=False),
        sa.Column('end_after_occurrences', sa.Integer(), nullable=True),
        sa.Column('end_until_date', sa.Date(), nullable=True),
        sa.Column('anchor_policy', sa.String(length=30), nullable=False),
        sa.Column('created_on', sa.Date(), nullable=False),
        sa.Column('created_occurrences', sa.Integer(), nullable=False),
        sa.Column('last_occurrence_date', sa.Date(), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint('interval_value >= 1', name='ck_rule_interval_positive'),
        sa.CheckConstraint('created_occurrences >= 0', name='ck_rule_occurrences_non_negative'),
        sa.ForeignKeyConstraint(['parent_item_id'], ['care_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('parent_item_id')
    )
    with op.batch_alter_table('recurrence_rules', schema=None) as batch_op:
        batch_op.create_index('idx_rule_group', ['group_id'], unique=False)

    op.create_table('materialized_occurrences',
        sa.Column('parent_item_id', GUID(), nullable=False),
        sa.Column('anchor_date', sa.Date(), nullable=False),
        sa.Column('item_id', GUID(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['parent_item_id'], ['care_items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['item_id'], ['care_items.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('parent_item_id', 'anchor_date', name='uq_materialized_key')
    )

    op.create_table('completion_events',
        sa.Column('parent_item_id', GUID(), nullable=False),
        sa.Column('source_item_id', GUID(), nullable=True),
        sa.Column('anchor_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_item_id', GUID(), nullable=True),
        sa.Column('next_due_date', sa.Date(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['parent_item_id'], ['care_items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['source_item_id'], ['care_items.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('parent_item_id', 'anchor_date', name='uq_completion_event_key')
    )
    with op.batch_alter_table('completion_events', schema=None) as batch_op:
        batch_op.create_index('idx_completion_event_status', ['status'], unique=False)


def downgrade() -> None:
    with op.batch_alter_table('completion_events', schema=None) as batch_op:
        batch_op.drop_index('idx_completion_event_status')
    op.drop_table('completion_events')

    op.drop_table('materialized_occurrences')

    with op.batch_alter_table('recurrence_rules', schema=None) as batch_op:
        batch_op.drop_index('idx_rule_group')
    op.drop_table('recurrence_rules')

    with op.batch_alter_table('item_documents', schema=None) as batch_op:
        batch_op.drop_index('idx_item_document_item')
    op.drop_table('item_documents')

    with op.batch_alter_table('item_contacts', schema=None) as batch_op:
        batch_op.drop_index('idx_item_contact_item')
    op.drop_table('item_contacts')

    with op.batch_alter_table('care_items', schema=None) as batch_op:
        batch_op.drop_index('idx_item_deleted')
        batch_op.drop_index('idx_item_series_parent')
        batch_op.drop_index('idx_item_status')
        batch_op.drop_index('idx_item_due_date')
        batch_op.drop_index('idx_item_group')
    op.drop_table('care_items')
