"""Add courses.department for the course listing filter

Revision ID: add_course_department
Revises: add_podcast_status
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


revision = 'add_course_department'
down_revision = 'add_podcast_status'
branch_labels = None
depends_on = None


def upgrade():
    op.add_column('courses', sa.Column('department', sa.String(), nullable=True))
    op.create_index('ix_courses_department', 'courses', ['department'])


def downgrade():
    op.drop_index('ix_courses_department', 'courses')
    op.drop_column('courses', 'department')
