"""Add request_events for order rate limiting

Revision ID: c4e8f1a2b3d6
Revises: b7c1d2e3f4a5
Create Date: 2026-10-19 10:00:00.000000

Tables:
- request_events: Append-only log of throttled requests (order attempts per IP)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c4e8f1a2b3d6'
down_revision = 'b7c1d2e3f4a5'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'request_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index(
        'ix_request_events_type_ip_occurred',
        'request_events',
        ['event_type', 'ip_address', 'occurred_at'],
        unique=False,
    )


def downgrade():
    op.drop_index('ix_request_events_type_ip_occurred', table_name='request_events')
    op.drop_table('request_events')
