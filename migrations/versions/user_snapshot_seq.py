"""per-user snapshot sequence counter

Revision ID: user_snapshot_seq
Revises: seed_demo_patient
Create Date: 2025-11-03
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'user_snapshot_seq'
down_revision = 'seed_demo_patient'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('user') as batch_op:
        batch_op.add_column(
            sa.Column('snapshot_seq', sa.Integer(), nullable=False, server_default='0')
        )


def downgrade():
    with op.batch_alter_table('user') as batch_op:
        batch_op.drop_column('snapshot_seq')
