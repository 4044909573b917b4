"""Initial progress schema: content mirror, activity, quiz attempts, ledger.

Revision ID: 0001
Revises:
Create Date: 2026-10-15
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(name, sa.Uuid(), primary_key=True)


def _ts(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    # ── Content (read-only mirror) ──────────────────────────────────────
    op.create_table(
        "courses",
        _uuid_pk("course_id"),
        sa.Column("title", sa.String(300), nullable=False),
        _ts("created_at"),
    )
    op.create_table(
        "course_modules",
        _uuid_pk("module_id"),
        sa.Column(
            "course_id", sa.Uuid(),
            sa.ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("sort_order", sa.SmallInteger(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )
    op.create_index("ix_course_modules_course_id", "course_modules", ["course_id"])

    op.create_table(
        "module_prerequisites",
        sa.Column(
            "module_id", sa.Uuid(),
            sa.ForeignKey("course_modules.module_id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "prerequisite_module_id", sa.Uuid(),
            sa.ForeignKey("course_modules.module_id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("required_completion", sa.Float(), nullable=False, server_default="100"),
        sa.CheckConstraint(
            "required_completion >= 0 AND required_completion <= 100",
            name="ck_module_prerequisites_required_completion",
        ),
    )
    op.create_index(
        "ix_module_prerequisites_prerequisite", "module_prerequisites", ["prerequisite_module_id"],
    )

    op.create_table(
        "lessons",
        _uuid_pk("lesson_id"),
        sa.Column(
            "module_id", sa.Uuid(),
            sa.ForeignKey("course_modules.module_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("sort_order", sa.SmallInteger(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("video_key", sa.String(500), nullable=True),
        sa.Column("video_duration_secs", sa.Integer(), nullable=True),
        sa.Column("require_video_watch", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("min_time_spent_secs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quiz_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("require_quiz_pass", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("quiz_min_passing_score", sa.SmallInteger(), nullable=True),
        sa.Column("quiz_block_progress", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "quiz_show_at",
            sa.Enum(
                "BEFORE", "AFTER", "ANY",
                name="show_quiz_at", native_enum=False, length=20, create_constraint=True,
            ),
            nullable=False,
            server_default="AFTER",
        ),
        sa.Column("quiz_min_time_secs", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
    )
    op.create_index("ix_lessons_module_id_sort_order", "lessons", ["module_id", "sort_order"])

    op.create_table(
        "lesson_assets",
        _uuid_pk("asset_id"),
        sa.Column(
            "lesson_id", sa.Uuid(),
            sa.ForeignKey("lessons.lesson_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("file_key", sa.String(500), nullable=False),
        sa.Column("download_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        _ts("uploaded_at"),
    )
    op.create_index("ix_lesson_assets_lesson_id", "lesson_assets", ["lesson_id"])

    op.create_table(
        "quizzes",
        _uuid_pk("quiz_id"),
        sa.Column(
            "lesson_id", sa.Uuid(),
            sa.ForeignKey("lessons.lesson_id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("passing_score", sa.SmallInteger(), nullable=False, server_default="50"),
        sa.Column("max_attempts", sa.SmallInteger(), nullable=False, server_default="3"),
        sa.Column("time_limit_secs", sa.Integer(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
    )

    op.create_table(
        "quiz_attempts",
        _uuid_pk("attempt_id"),
        sa.Column(
            "quiz_id", sa.Uuid(),
            sa.ForeignKey("quizzes.quiz_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("attempt_number", sa.SmallInteger(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "IN_PROGRESS", "COMPLETED", "GRADING", "GRADED",
                name="quiz_attempt_status", native_enum=False, length=20, create_constraint=True,
            ),
            nullable=False,
            server_default="IN_PROGRESS",
        ),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("percentage", sa.Float(), nullable=True),
        sa.Column("passed", sa.Boolean(), nullable=True),
        _ts("started_at"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("quiz_id", "user_id", "attempt_number", name="uq_quiz_attempt_number"),
    )
    op.create_index("ix_quiz_attempts_quiz_user", "quiz_attempts", ["quiz_id", "user_id"])

    op.create_table(
        "enrollments",
        _uuid_pk("enrollment_id"),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column(
            "course_id", sa.Uuid(),
            sa.ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "enrollment_type",
            sa.Enum(
                "FULL", "PARTIAL",
                name="enrollment_type", native_enum=False, length=20, create_constraint=True,
            ),
            nullable=False,
            server_default="FULL",
        ),
        sa.Column(
            "enrolled_module_ids",
            sa.JSON().with_variant(JSONB(), "postgresql"),
            nullable=False,
            server_default="[]",
        ),
        _ts("created_at"),
        sa.UniqueConstraint("user_id", "course_id", name="uq_enrollments_user_course"),
    )
    op.create_index("ix_enrollments_user_id", "enrollments", ["user_id"])

    # ── Activity ────────────────────────────────────────────────────────
    op.create_table(
        "lesson_activity",
        _uuid_pk("activity_id"),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column(
            "lesson_id", sa.Uuid(),
            sa.ForeignKey("lessons.lesson_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("time_spent_secs", sa.Integer(), nullable=False, server_default="0"),
        _ts("last_accessed"),
        sa.UniqueConstraint("user_id", "lesson_id", name="uq_lesson_activity_user_lesson"),
        sa.CheckConstraint("time_spent_secs >= 0", name="ck_lesson_activity_time_spent"),
    )
    op.create_index("ix_lesson_activity_lesson_id", "lesson_activity", ["lesson_id"])

    op.create_table(
        "video_progress",
        _uuid_pk("progress_id"),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column(
            "lesson_id", sa.Uuid(),
            sa.ForeignKey("lessons.lesson_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("watched_secs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_position_secs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("last_accessed"),
        sa.UniqueConstraint("user_id", "lesson_id", name="uq_video_progress_user_lesson"),
        sa.CheckConstraint("watched_secs >= 0", name="ck_video_progress_watched"),
        sa.CheckConstraint("last_position_secs >= 0", name="ck_video_progress_position"),
    )
    op.create_index("ix_video_progress_lesson_id", "video_progress", ["lesson_id"])

    op.create_table(
        "asset_progress",
        _uuid_pk("progress_id"),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column(
            "lesson_id", sa.Uuid(),
            sa.ForeignKey("lessons.lesson_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "asset_id", sa.Uuid(),
            sa.ForeignKey("lesson_assets.asset_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        _ts("first_downloaded_at"),
        _ts("last_downloaded_at"),
        sa.UniqueConstraint(
            "user_id", "lesson_id", "asset_id", name="uq_asset_progress_user_lesson_asset",
        ),
    )
    op.create_index("ix_asset_progress_user_lesson", "asset_progress", ["user_id", "lesson_id"])

    # ── Ledger ──────────────────────────────────────────────────────────
    op.create_table(
        "module_progress",
        _uuid_pk("entry_id"),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column(
            "course_id", sa.Uuid(),
            sa.ForeignKey("courses.course_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "module_id", sa.Uuid(),
            sa.ForeignKey("course_modules.module_id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "completed_lesson_ids",
            sa.JSON().with_variant(JSONB(), "postgresql"),
            nullable=False,
            server_default="[]",
        ),
        sa.Column(
            "completed_quiz_ids",
            sa.JSON().with_variant(JSONB(), "postgresql"),
            nullable=False,
            server_default="[]",
        ),
        sa.Column("progress_pct", sa.Float(), nullable=False, server_default="0"),
        _ts("last_accessed"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("user_id", "module_id", name="uq_module_progress_user_module"),
    )
    op.create_index("ix_module_progress_user_course", "module_progress", ["user_id", "course_id"])


def downgrade() -> None:
    op.drop_index("ix_module_progress_user_course", table_name="module_progress")
    op.drop_table("module_progress")
    op.drop_index("ix_asset_progress_user_lesson", table_name="asset_progress")
    op.drop_table("asset_progress")
    op.drop_index("ix_video_progress_lesson_id", table_name="video_progress")
    op.drop_table("video_progress")
    op.drop_index("ix_lesson_activity_lesson_id", table_name="lesson_activity")
    op.drop_table("lesson_activity")
    op.drop_index("ix_enrollments_user_id", table_name="enrollments")
    op.drop_table("enrollments")
    op.drop_index("ix_quiz_attempts_quiz_user", table_name="quiz_attempts")
    op.drop_table("quiz_attempts")
    op.drop_table("quizzes")
    op.drop_index("ix_lesson_assets_lesson_id", table_name="lesson_assets")
    op.drop_table("lesson_assets")
    op.drop_index("ix_lessons_module_id_sort_order", table_name="lessons")
    op.drop_table("lessons")
    op.drop_index("ix_module_prerequisites_prerequisite", table_name="module_prerequisites")
    op.drop_table("module_prerequisites")
    op.drop_index("ix_course_modules_course_id", table_name="course_modules")
    op.drop_table("course_modules")
    op.drop_table("courses")
