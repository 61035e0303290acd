"""Create users, rooms, memberships, messages and receipts

Revision ID: 0001_create_chat_tables
Revises:
Create Date: 2025-08-20 08:28:05.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001_create_chat_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.text('false'), nullable=False),
    ]


def _base_indexes(table: str):
    op.create_index(f'ix_{table}_id', table, ['id'])
    op.create_index(f'ix_{table}_created_at', table, ['created_at'])
    op.create_index(f'ix_{table}_is_deleted', table, ['is_deleted'])


def upgrade() -> None:
    room_role = postgresql.ENUM('owner', 'member', name='room_role', create_type=False)
    room_role.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
    )
    _base_indexes('users')
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'rooms',
        *_base_columns(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_private', sa.Boolean(), server_default=sa.text('false'), nullable=False),
    )
    _base_indexes('rooms')

    op.create_table(
        'room_members',
        *_base_columns(),
        sa.Column('room_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('rooms.id'), nullable=False),
        sa.Column('member_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('role', room_role, server_default='member', nullable=False),
    )
    _base_indexes('room_members')
    op.create_index('ix_room_members_room_id', 'room_members', ['room_id'])
    op.create_index('ix_room_members_member_id', 'room_members', ['member_id'])
    op.create_index(
        'uq_room_members_active',
        'room_members',
        ['room_id', 'member_id'],
        unique=True,
        postgresql_where=sa.text('is_deleted = false'),
    )

    op.create_table(
        'messages',
        *_base_columns(),
        sa.Column('room_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('rooms.id'), nullable=False),
        sa.Column('sender_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
    )
    _base_indexes('messages')
    op.create_index('ix_messages_room_id', 'messages', ['room_id'])
    op.create_index('ix_messages_sender_id', 'messages', ['sender_id'])
    op.create_index('idx_messages_room_time', 'messages', ['room_id', 'created_at'])

    op.create_table(
        'message_receipts',
        *_base_columns(),
        sa.Column('message_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('messages.id'), nullable=False),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('message_id', 'recipient_id', name='uq_message_receipts_message_recipient'),
    )
    _base_indexes('message_receipts')
    op.create_index('ix_message_receipts_message_id', 'message_receipts', ['message_id'])
    op.create_index('ix_message_receipts_recipient_id', 'message_receipts', ['recipient_id'])
    op.create_index('idx_message_receipts_unread', 'message_receipts', ['recipient_id', 'read_at'])


def downgrade() -> None:
    op.drop_table('message_receipts')
    op.drop_table('messages')
    op.drop_table('room_members')
    op.drop_table('rooms')
    op.drop_table('users')
    postgresql.ENUM(name='room_role').drop(op.get_bind(), checkfirst=True)
