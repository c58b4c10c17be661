"""users, care links, medications and per-day medication logs

Revision ID: initial_schema
Revises:
Create Date: 2025-10-20
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=120), nullable=False, unique=True),
        sa.Column('display_name', sa.String(length=120), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='patient'),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'care_link',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('caretaker_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('reminder_last_sent_date', sa.Date(), nullable=True),
        sa.UniqueConstraint('caretaker_id', 'patient_id', name='uq_care_link_pair'),
    )
    op.create_index('ix_care_link_caretaker_id', 'care_link', ['caretaker_id'])
    op.create_index('ix_care_link_patient_id', 'care_link', ['patient_id'])

    op.create_table(
        'medication',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('dosage', sa.String(length=80), nullable=False),
        sa.Column('schedule', sa.String(length=40), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_medication_user_id', 'medication', ['user_id'])

    op.create_table(
        'medication_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('medication_id', sa.Integer(), sa.ForeignKey('medication.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=10), nullable=False, server_default='taken'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        # one row per (medication, user, day); writes upsert on this key
        sa.UniqueConstraint('medication_id', 'user_id', 'date', name='uq_medication_log_day'),
    )
    op.create_index('ix_medication_log_medication_id', 'medication_log', ['medication_id'])
    op.create_index('ix_medication_log_user_id', 'medication_log', ['user_id'])
    op.create_index('ix_medication_log_date', 'medication_log', ['date'])


def downgrade():
    op.drop_table('medication_log')
    op.drop_table('medication')
    op.drop_table('care_link')
    op.drop_table('user')
