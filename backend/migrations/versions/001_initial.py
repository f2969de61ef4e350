"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

Creates all database tables for the Coaching Dashboard:
- users / user_details: accounts, roles, approval state and profiles
- relations: student <-> coach <-> mentor edges (plus coach tracking rows)
- notes / lesson_plans: notes about a user and their active plan
- attendances: class attendance records

Also creates indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Users Table ───────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.String(10), primary_key=True),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('first_name', sa.Text(), nullable=False, server_default=''),
        sa.Column('last_name', sa.Text(), nullable=False, server_default=''),
        sa.Column('role', sa.String(16), nullable=False),
        sa.Column('approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])

    # ── User Details Table ────────────────────────────────────
    op.create_table(
        'user_details',
        sa.Column('user_id', sa.String(10),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('city', sa.Text(), server_default=''),
        sa.Column('state', sa.Text(), server_default=''),
        sa.Column('country', sa.Text(), server_default=''),
        sa.Column('zipcode', sa.Text(), server_default=''),
        sa.Column('phone', sa.Text(), server_default=''),
        sa.Column('dob', sa.Date(), nullable=True),
        sa.Column('lichess_username', sa.Text(), server_default=''),
        sa.Column('uscf_id', sa.Text(), server_default=''),
        sa.Column('chesscom_username', sa.Text(), server_default=''),
        sa.Column('fide_id', sa.Text(), server_default=''),
        sa.Column('bio', sa.Text(), server_default=''),
        sa.Column('profile_picture_url', sa.Text(), server_default=''),
        sa.Column('additional_info', sa.JSON(), nullable=False,
                  server_default=sa.text("'{}'")),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # ── Relations Table ───────────────────────────────────────
    # user_id is not a foreign key: tracking rows carry a synthetic id
    op.create_table(
        'relations',
        sa.Column('coach_id', sa.String(10), primary_key=True),
        sa.Column('user_id', sa.String(10), primary_key=True),
        sa.Column('mentor_id', sa.String(10), nullable=False, server_default=''),
        sa.Column('is_tracking', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_relations_mentor_id', 'relations', ['mentor_id'])
    op.create_index('ix_relations_user_id', 'relations', ['user_id'])

    # ── Notes Table ───────────────────────────────────────────
    op.create_table(
        'notes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(10), nullable=False),
        sa.Column('title', sa.Text(), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('primary_tag', sa.Text(), nullable=False, server_default=''),
        sa.Column('tags', sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column('is_starred', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('additional_info', sa.JSON(), nullable=False,
                  server_default=sa.text("'{}'")),
        sa.Column('visibility', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.String(10), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('visibility BETWEEN 1 AND 4', name='ck_notes_visibility'),
    )
    op.create_index('ix_notes_user_id', 'notes', ['user_id'])
    op.create_index('ix_notes_deleted_at', 'notes', ['deleted_at'])

    # ── Lesson Plans Table ────────────────────────────────────
    op.create_table(
        'lesson_plans',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(10), nullable=False),
        sa.Column('title', sa.Text(), nullable=False, server_default=''),
        sa.Column('description', sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('result', sa.Text(), nullable=False, server_default=''),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(10), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_lesson_plans_user_id', 'lesson_plans', ['user_id'])
    op.create_index('ix_lesson_plans_active', 'lesson_plans', ['active'])

    # ── Attendances Table ─────────────────────────────────────
    op.create_table(
        'attendances',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('student_id', sa.String(10), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('coach_id', sa.String(10), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('class_type', sa.String(16), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('session_id', sa.String(64), nullable=False, server_default=''),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('class_highlights', sa.Text(), nullable=False, server_default=''),
        sa.Column('homework', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "class_type IN ('regular', 'dual', 'game_session', 'substitution')",
            name='ck_attendances_class_type',
        ),
    )
    op.create_index('ix_attendances_student_id', 'attendances', ['student_id'])
    op.create_index('ix_attendances_coach_id', 'attendances', ['coach_id'])
    op.create_index('ix_attendances_date', 'attendances', ['date'])
    op.create_index('ix_attendances_session_id', 'attendances', ['session_id'])


def downgrade() -> None:
    op.drop_table('attendances')
    op.drop_table('lesson_plans')
    op.drop_table('notes')
    op.drop_table('relations')
    op.drop_table('user_details')
    op.drop_table('users')
