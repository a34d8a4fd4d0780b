"""create ledger and cascade tables

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-03-02

Creates:
- webhook_events: idempotency ledger, unique (provider, external_event_id)
- clients, guests: primary records
- accommodation_stays: unique guest_id
- transport_legs: unique guest_id
- schedule_entries: unique (source_module, source_id)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a1c2e3f4b5d6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade() -> None:
    # Idempotency ledger
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.UUID(), nullable=False,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('external_event_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('payload', postgresql.JSONB(), nullable=False,
                  server_default=sa.text("'{}'::jsonb")),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('processing_duration_ms', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'external_event_id',
                            name='uq_webhook_events_provider_event_id'),
        sa.CheckConstraint("status IN ('pending', 'processed', 'failed', 'skipped')",
                           name='check_webhook_events_status'),
        sa.CheckConstraint('retry_count >= 0', name='check_webhook_events_retry_count'),
    )
    op.create_index('idx_webhook_events_status', 'webhook_events', ['status'])
    op.create_index('idx_webhook_events_created_at', 'webhook_events', ['created_at'])
    op.create_index('idx_webhook_events_event_type', 'webhook_events', ['event_type'])

    # Primary records
    op.create_table(
        'clients',
        sa.Column('id', sa.UUID(), nullable=False,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('event_date', sa.DATE(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'guests',
        sa.Column('id', sa.UUID(), nullable=False,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('arrival_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('arrival_mode', sa.String(100), nullable=True),
        sa.Column('departure_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('departure_mode', sa.String(100), nullable=True),
        sa.Column('accommodation_required', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('hotel_name', sa.String(200), nullable=True),
        sa.Column('hotel_check_in', sa.DATE(), nullable=True),
        sa.Column('hotel_check_out', sa.DATE(), nullable=True),
        sa.Column('hotel_room_type', sa.String(100), nullable=True),
        sa.Column('transport_required', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('transport_type', sa.String(100), nullable=True),
        sa.Column('transport_pickup_location', sa.String(255), nullable=True),
        sa.Column('transport_pickup_date', sa.DATE(), nullable=True),
        sa.Column('transport_pickup_time', sa.TIME(), nullable=True),
        sa.Column('transport_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_guests_client_id', 'guests', ['client_id'])

    # Derived records
    op.create_table(
        'accommodation_stays',
        sa.Column('id', sa.UUID(), nullable=False,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('guest_id', sa.UUID(), nullable=False),
        sa.Column('guest_name', sa.String(200), nullable=False),
        sa.Column('hotel_name', sa.String(200), nullable=True),
        sa.Column('check_in', sa.DATE(), nullable=True),
        sa.Column('check_out', sa.DATE(), nullable=True),
        sa.Column('room_type', sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['guest_id'], ['guests.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('guest_id', name='uq_accommodation_stays_guest_id'),
    )
    op.create_index('idx_accommodation_stays_client_id', 'accommodation_stays', ['client_id'])

    op.create_table(
        'transport_legs',
        sa.Column('id', sa.UUID(), nullable=False,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('guest_id', sa.UUID(), nullable=False),
        sa.Column('guest_name', sa.String(200), nullable=False),
        sa.Column('leg_type', sa.String(20), nullable=False, server_default='arrival'),
        sa.Column('pickup_date', sa.DATE(), nullable=True),
        sa.Column('pickup_time', sa.TIME(), nullable=True),
        sa.Column('pickup_from', sa.String(255), nullable=True),
        sa.Column('drop_to', sa.String(255), nullable=True),
        sa.Column('vehicle_info', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['guest_id'], ['guests.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('guest_id', name='uq_transport_legs_guest_id'),
        sa.CheckConstraint("leg_type IN ('arrival', 'departure', 'inter_event')",
                           name='check_transport_legs_leg_type'),
    )
    op.create_index('idx_transport_legs_client_id', 'transport_legs', ['client_id'])

    op.create_table(
        'schedule_entries',
        sa.Column('id', sa.UUID(), nullable=False,
                  server_default=sa.text('gen_random_uuid()')),
        sa.Column('client_id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('source_module', sa.String(20), nullable=False),
        sa.Column('source_id', sa.UUID(), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=False,
                  server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('source_module', 'source_id', name='uq_schedule_entries_source'),
        sa.CheckConstraint("source_module IN ('accommodation', 'transport')",
                           name='check_schedule_entries_source_module'),
    )
    op.create_index('idx_schedule_entries_client_id', 'schedule_entries', ['client_id'])
    op.create_index('idx_schedule_entries_start_time', 'schedule_entries', ['start_time'])


def downgrade() -> None:
    op.drop_index('idx_schedule_entries_start_time', table_name='schedule_entries')
    op.drop_index('idx_schedule_entries_client_id', table_name='schedule_entries')
    op.drop_table('schedule_entries')

    op.drop_index('idx_transport_legs_client_id', table_name='transport_legs')
    op.drop_table('transport_legs')

    op.drop_index('idx_accommodation_stays_client_id', table_name='accommodation_stays')
    op.drop_table('accommodation_stays')

    op.drop_index('idx_guests_client_id', table_name='guests')
    op.drop_table('guests')

    op.drop_table('clients')

    op.drop_index('idx_webhook_events_event_type', table_name='webhook_events')
    op.drop_index('idx_webhook_events_created_at', table_name='webhook_events')
    op.drop_index('idx_webhook_events_status', table_name='webhook_events')
    op.drop_table('webhook_events')
