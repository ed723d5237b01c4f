"""add consultation reminders table and reminders_sent ledger

Revision ID: 001_add_consultation_reminders
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_add_consultation_reminders'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column('consultations', sa.Column('reminders_sent', sa.JSON(), nullable=True))
    op.add_column('consultations', sa.Column('message_service', sa.String(), nullable=False, server_default='WHATSAPP'))
    op.create_table(
        'consultation_reminders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('consultation_id', sa.Integer(), sa.ForeignKey('consultations.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('template_key', sa.String(), nullable=True),
        sa.Column('template_sid', sa.String(), nullable=True),
        sa.Column('send_status', sa.String(), nullable=True),
        sa.Column('claimed_by', sa.String(), nullable=True),
        sa.Column('lease_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('ix_consultation_reminders_consultation_id', 'consultation_reminders', ['consultation_id'])
    op.create_index('ix_consultation_reminders_status_time', 'consultation_reminders', ['status', 'scheduled_for'])
    op.create_index(
        'uq_consultation_reminders_pending_type',
        'consultation_reminders',
        ['consultation_id', 'type'],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )


def downgrade() -> None:
    op.drop_index('uq_consultation_reminders_pending_type', table_name='consultation_reminders')
    op.drop_index('ix_consultation_reminders_status_time', table_name='consultation_reminders')
    op.drop_index('ix_consultation_reminders_consultation_id', table_name='consultation_reminders')
    op.drop_table('consultation_reminders')
    op.drop_column('consultations', 'message_service')
    op.drop_column('consultations', 'reminders_sent')
