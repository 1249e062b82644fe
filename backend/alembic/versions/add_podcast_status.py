"""Replace podcasts.is_live with a status column and allow one live session per course

Revision ID: add_podcast_status
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


revision = 'add_podcast_status'
down_revision = None
branch_labels = None
depends_on = None


session_status = sa.Enum('scheduled', 'live', 'ended', name='sessionstatus')


def upgrade():
    session_status.create(op.get_bind(), checkfirst=True)

    op.add_column('podcasts', sa.Column('status', session_status, nullable=True))
    op.add_column('podcasts', sa.Column('start_time', sa.DateTime(timezone=True), nullable=True))
    op.add_column('podcasts', sa.Column('end_time', sa.DateTime(timezone=True), nullable=True))

    # Backfill from the old flag
    op.execute("UPDATE podcasts SET status = 'live', start_time = created_at WHERE is_live = true")
    op.execute("UPDATE podcasts SET status = 'ended' WHERE status IS NULL")

    # Older rows could hold several live sessions for one course; keep the newest
    op.execute("""
        UPDATE podcasts SET status = 'ended', end_time = now(), file_url = 'ended_stream.mp4'
        WHERE status = 'live' AND id NOT IN (
            SELECT MAX(id) FROM podcasts WHERE status = 'live' GROUP BY course_id
        )
    """)

    op.alter_column('podcasts', 'status', nullable=False)
    op.drop_column('podcasts', 'is_live')

    op.create_index(
        'uq_podcasts_one_live_per_course',
        'podcasts',
        ['course_id'],
        unique=True,
        postgresql_where=sa.text("status = 'live'")
    )


def downgrade():
    op.drop_index('uq_podcasts_one_live_per_course', 'podcasts')

    op.add_column('podcasts', sa.Column('is_live', sa.Boolean(), nullable=False, server_default='false'))
    op.execute("UPDATE podcasts SET is_live = true WHERE status = 'live'")

    op.drop_column('podcasts', 'end_time')
    op.drop_column('podcasts', 'start_time')
    op.drop_column('podcasts', 'status')
    session_status.drop(op.get_bind(), checkfirst=True)
