"""Initial schema - workflow templates, tags, dependent templates, history, audit

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    """Create tables for BPMN Admin"""

    op.create_table(
        'workflow_template_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflow_template_categories_id'), 'workflow_template_categories', ['id'], unique=False)

    # IDs are assigned by the application (latest + 1)
    op.create_table(
        'workflow_templates',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('workflow_template_category_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('xml_bpmn_schema', sa.Text(), nullable=True),
        sa.Column('data', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('access_units', postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column('errors_subscribers', postgresql.JSON(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['workflow_template_category_id'], ['workflow_template_categories.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflow_templates_id'), 'workflow_templates', ['id'], unique=False)
    op.create_index(op.f('ix_workflow_templates_name'), 'workflow_templates', ['name'], unique=False)
    op.create_index(
        op.f('ix_workflow_templates_workflow_template_category_id'),
        'workflow_templates', ['workflow_template_category_id'], unique=False
    )

    op.create_table(
        'workflow_template_tags',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('color', sa.String(length=32), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Text(), server_default='system', nullable=False),
        sa.Column('updated_by', sa.Text(), server_default='system', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflow_template_tags_id'), 'workflow_template_tags', ['id'], unique=False)
    op.create_index(op.f('ix_workflow_template_tags_name'), 'workflow_template_tags', ['name'], unique=False)

    op.create_table(
        'workflow_template_tag_map',
        sa.Column('workflow_template_id', sa.Integer(), nullable=False),
        sa.Column('workflow_template_tag_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['workflow_template_id'], ['workflow_templates.id'], ),
        sa.ForeignKeyConstraint(['workflow_template_tag_id'], ['workflow_template_tags.id'], ),
        sa.PrimaryKeyConstraint('workflow_template_id', 'workflow_template_tag_id')
    )
    op.create_index(
        op.f('ix_workflow_template_tag_map_workflow_template_id'),
        'workflow_template_tag_map', ['workflow_template_id'], unique=False
    )
    op.create_index(
        op.f('ix_workflow_template_tag_map_workflow_template_tag_id'),
        'workflow_template_tag_map', ['workflow_template_tag_id'], unique=False
    )

    op.create_table(
        'document_templates',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('json_schema', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('json_schema_raw', sa.Text(), nullable=True),
        sa.Column('html_template', sa.Text(), nullable=True),
        sa.Column('additional_data_to_sign', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_document_templates_id'), 'document_templates', ['id'], unique=False)

    op.create_table(
        'task_templates',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('document_template_id', sa.Integer(), nullable=True),
        sa.Column('json_schema', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('json_schema_raw', sa.Text(), nullable=True),
        sa.Column('html_template', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['document_template_id'], ['document_templates.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_task_templates_id'), 'task_templates', ['id'], unique=False)
    op.create_index(op.f('ix_task_templates_document_template_id'), 'task_templates', ['document_template_id'], unique=False)

    op.create_table(
        'gateway_templates',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('gateway_type_id', sa.Integer(), nullable=True),
        sa.Column('json_schema', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('json_schema_raw', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_gateway_templates_id'), 'gateway_templates', ['id'], unique=False)

    op.create_table(
        'event_templates',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('event_type_id', sa.Integer(), nullable=True),
        sa.Column('json_schema', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('json_schema_raw', sa.Text(), nullable=True),
        sa.Column('html_template', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_event_templates_id'), 'event_templates', ['id'], unique=False)

    op.create_table(
        'number_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('template', sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_number_templates_id'), 'number_templates', ['id'], unique=False)

    op.create_table(
        'workflow_histories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workflow_template_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('data', postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column('version', sa.String(length=32), nullable=True),
        sa.Column('is_current_version', sa.Boolean(), nullable=False),
        sa.Column('meta', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['workflow_template_id'], ['workflow_templates.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflow_histories_id'), 'workflow_histories', ['id'], unique=False)
    op.create_index(op.f('ix_workflow_histories_workflow_template_id'), 'workflow_histories', ['workflow_template_id'], unique=False)
    op.create_index(op.f('ix_workflow_histories_version'), 'workflow_histories', ['version'], unique=False)

    op.create_table(
        'units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_units_id'), 'units', ['id'], unique=False)

    # Live instances; the foreign key blocks deleting a template in use
    op.create_table(
        'workflows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('workflow_template_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['workflow_template_id'], ['workflow_templates.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_workflows_id'), 'workflows', ['id'], unique=False)
    op.create_index(op.f('ix_workflows_workflow_template_id'), 'workflows', ['workflow_template_id'], unique=False)
    op.create_index(op.f('ix_workflows_status'), 'workflows', ['status'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event', sa.String(length=255), nullable=False),
        sa.Column('payload', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_audit_logs_event'), 'audit_logs', ['event'], unique=False)
    op.create_index(op.f('ix_audit_logs_user_id'), 'audit_logs', ['user_id'], unique=False)


def downgrade() -> None:
    """Drop all tables"""
    for table in (
        'audit_logs',
        'workflows',
        'units',
        'workflow_histories',
        'number_templates',
        'event_templates',
        'gateway_templates',
        'task_templates',
        'document_templates',
        'workflow_template_tag_map',
        'workflow_template_tags',
        'workflow_templates',
        'workflow_template_categories',
    ):
        op.drop_table(table)
