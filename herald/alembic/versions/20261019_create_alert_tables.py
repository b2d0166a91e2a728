"""create alert plugin instance, alert group and plugin define tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from datetime import UTC, datetime
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1a2b3c4d5e6f'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BIGINT_IDENTITY = sa.BigInteger().with_variant(sa.Integer(), 'sqlite')


def upgrade() -> None:
    op.create_table(
        'plugin_defines',
        sa.Column('id', BIGINT_IDENTITY, autoincrement=True, nullable=False),
        sa.Column('plugin_name', sa.String(length=255), nullable=False),
        sa.Column('plugin_type', sa.String(length=50), nullable=False, server_default='alert'),
        sa.Column('plugin_params', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('plugin_name', 'plugin_type', name='uq_plugin_defines_name_type'),
    )

    op.create_table(
        'alert_plugin_instances',
        sa.Column('id', BIGINT_IDENTITY, autoincrement=True, nullable=False),
        sa.Column('plugin_define_id', sa.Integer(), nullable=False),
        sa.Column('instance_name', sa.String(length=255), nullable=False),
        sa.Column('instance_type', sa.String(length=20), nullable=False),
        sa.Column('warning_type', sa.String(length=20), nullable=True),
        sa.Column('plugin_instance_params', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('instance_name'),
    )
    op.create_index(
        'ix_alert_plugin_instances_plugin_define_id',
        'alert_plugin_instances',
        ['plugin_define_id'],
    )

    alert_groups = op.create_table(
        'alert_groups',
        sa.Column('id', BIGINT_IDENTITY, autoincrement=True, nullable=False),
        sa.Column('group_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('alert_instance_ids', sa.Text(), nullable=False, server_default=''),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_name'),
    )

    # Group 2 is the default global alert group (alerts.global_alert_group_id)
    now = datetime.now(UTC)
    op.bulk_insert(
        alert_groups,
        [
            {'id': 1, 'group_name': 'default admin warning group', 'description': 'default admin warning group',
             'alert_instance_ids': '', 'version': 0, 'created_at': now, 'updated_at': now},
            {'id': 2, 'group_name': 'global alert group', 'description': 'global alert group',
             'alert_instance_ids': '', 'version': 0, 'created_at': now, 'updated_at': now},
        ],
    )


def downgrade() -> None:
    op.drop_table('alert_groups')
    op.drop_index('ix_alert_plugin_instances_plugin_define_id', table_name='alert_plugin_instances')
    op.drop_table('alert_plugin_instances')
    op.drop_table('plugin_defines')
