"""create course messaging tables

Revision ID: 0001_create_course_messaging
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_create_course_messaging'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', sa.Enum('ADMIN', 'LECTURER', 'STUDENT', name='user_role'), nullable=False),
        sa.Column('department', sa.String(255), nullable=True),
        sa.Column('is_banned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_id', 'users', ['id'], unique=False)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'courses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('lecturer_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['lecturer_id'], ['users.id'], name='fk_courses_lecturer_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_courses'),
    )
    op.create_index('ix_courses_id', 'courses', ['id'], unique=False)
    op.create_index('ix_courses_lecturer_id', 'courses', ['lecturer_id'], unique=False)

    op.create_table(
        'course_enrollments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], name='fk_course_enrollments_course_id_courses', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_course_enrollments_user_id_users', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_course_enrollments'),
        sa.UniqueConstraint('course_id', 'user_id', name='uq_course_enrollments_course_user'),
    )
    op.create_index('ix_course_enrollments_id', 'course_enrollments', ['id'], unique=False)
    op.create_index('ix_course_enrollments_course_id', 'course_enrollments', ['course_id'], unique=False)
    op.create_index('ix_course_enrollments_user_id', 'course_enrollments', ['user_id'], unique=False)

    op.create_table(
        'course_messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('parent_message_id', sa.Integer(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('type', sa.Enum('TEXT', 'FILE', name='message_type'), nullable=False),
        sa.Column('pinned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('pinned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pinned_by_id', sa.Integer(), nullable=True),
        sa.Column('deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], name='fk_course_messages_course_id_courses', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], name='fk_course_messages_sender_id_users'),
        sa.ForeignKeyConstraint(['pinned_by_id'], ['users.id'], name='fk_course_messages_pinned_by_id_users'),
        sa.ForeignKeyConstraint(['parent_message_id'], ['course_messages.id'], name='fk_course_messages_parent_message_id_course_messages'),
        sa.PrimaryKeyConstraint('id', name='pk_course_messages'),
    )
    op.create_index('ix_course_messages_id', 'course_messages', ['id'], unique=False)
    op.create_index('ix_course_messages_sender_id', 'course_messages', ['sender_id'], unique=False)
    op.create_index('ix_course_messages_parent_message_id', 'course_messages', ['parent_message_id'], unique=False)
    op.create_index('ix_course_messages_deleted', 'course_messages', ['deleted'], unique=False)
    op.create_index('ix_course_messages_course_created', 'course_messages', ['course_id', 'created_at', 'id'], unique=False)
    op.create_index('ix_course_messages_course_parent', 'course_messages', ['course_id', 'parent_message_id'], unique=False)
    op.create_index(
        'uq_course_messages_pinned_per_course',
        'course_messages',
        ['course_id'],
        unique=True,
        postgresql_where=sa.text('pinned IS TRUE'),
        sqlite_where=sa.text('pinned = 1'),
    )

    op.create_table(
        'message_attachments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('message_id', sa.Integer(), nullable=False),
        sa.Column('file_name', sa.String(512), nullable=False),
        sa.Column('mime_type', sa.String(255), nullable=False),
        sa.Column('size', sa.BigInteger(), nullable=False),
        sa.Column('storage_url', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['message_id'], ['course_messages.id'], name='fk_message_attachments_message_id_course_messages', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_message_attachments'),
        sa.UniqueConstraint('message_id', name='uq_message_attachments_message_id'),
    )
    op.create_index('ix_message_attachments_id', 'message_attachments', ['id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_message_attachments_id', table_name='message_attachments')
    op.drop_table('message_attachments')

    op.drop_index('uq_course_messages_pinned_per_course', table_name='course_messages')
    op.drop_index('ix_course_messages_course_parent', table_name='course_messages')
    op.drop_index('ix_course_messages_course_created', table_name='course_messages')
    op.drop_index('ix_course_messages_deleted', table_name='course_messages')
    op.drop_index('ix_course_messages_parent_message_id', table_name='course_messages')
    op.drop_index('ix_course_messages_sender_id', table_name='course_messages')
    op.drop_index('ix_course_messages_id', table_name='course_messages')
    op.drop_table('course_messages')

    op.drop_index('ix_course_enrollments_user_id', table_name='course_enrollments')
    op.drop_index('ix_course_enrollments_course_id', table_name='course_enrollments')
    op.drop_index('ix_course_enrollments_id', table_name='course_enrollments')
    op.drop_table('course_enrollments')

    op.drop_index('ix_courses_lecturer_id', table_name='courses')
    op.drop_index('ix_courses_id', table_name='courses')
    op.drop_table('courses')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')

    op.execute('DROP TYPE IF EXISTS message_type')
    op.execute('DROP TYPE IF EXISTS user_role')
