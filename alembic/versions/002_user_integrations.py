"""Per-user third-party integrations

Revision ID: 002_user_integrations
Revises: 001_initial_schema
Create Date: 2026-10-19

Adds user_integrations, holding encrypted access tokens for providers
such as Figma.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_user_integrations'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'user_integrations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('token_hint', sa.String(length=4), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'provider'),
    )
    op.create_index('ix_user_integrations_user_id', 'user_integrations', ['user_id'], unique=False)
    op.create_index('ix_user_integrations_created_at', 'user_integrations', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_user_integrations_created_at', table_name='user_integrations')
    op.drop_index('ix_user_integrations_user_id', table_name='user_integrations')
    op.drop_table('user_integrations')
