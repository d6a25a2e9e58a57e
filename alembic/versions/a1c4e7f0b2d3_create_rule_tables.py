"""Create normalization, automatic and backup rule tables

Revision ID: a1c4e7f0b2d3
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c4e7f0b2d3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'normalization_rules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pattern', sa.String(), nullable=False),
        sa.Column('normalized_value', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_normalization_rules_id', 'normalization_rules', ['id'])
    op.create_index('ix_normalization_rules_pattern', 'normalization_rules', ['pattern'], unique=True)

    op.create_table(
        'automatic_rules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('kind', sa.String(), nullable=False),
        sa.Column('field', sa.String(), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('value', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_automatic_rules_id', 'automatic_rules', ['id'])
    op.create_index('ix_automatic_rules_kind', 'automatic_rules', ['kind'])

    op.create_table(
        'rule_backups',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('snapshot', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_rule_backups_id', 'rule_backups', ['id'])


def downgrade() -> None:
    op.drop_table('rule_backups')
    op.drop_table('automatic_rules')
    op.drop_table('normalization_rules')
