"""Initial learner progression schema

Revision ID: 001_initial
Revises:
Create Date: 2026-03-01

Creates the following tables:
- skill_progress: Per-(learner, skill node) mastery record
- lesson_sessions: Lesson attempts with their frozen question list
- lesson_answers: Graded answers, one per question per session
- hearts_pools: Per-learner hearts
- streak_records: Per-learner streak
- daily_progress: Per-(learner, date) activity totals
- user_achievements: Earned badges
- user_quest_progress: Per-(learner, quest, date) quest state
- reward_events: Rewards for the external currency ledger
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create skill_progress table
    op.create_table(
        "skill_progress",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("learner_id", sa.String(128), nullable=False),
        sa.Column("skill_node_id", sa.String(64), nullable=False),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lessons_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("perfect_lessons", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("strength", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("strength_decayed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_practiced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_review_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("learner_id", "skill_node_id", name="uq_skill_progress_learner_node"),
    )
    op.create_index("ix_skill_progress_learner_id", "skill_progress", ["learner_id"])
    op.create_index("ix_skill_progress_skill_node_id", "skill_progress", ["skill_node_id"])

    # Create lesson_sessions table
    op.create_table(
        "lesson_sessions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("learner_id", sa.String(128), nullable=False),
        sa.Column("skill_node_id", sa.String(64), nullable=False),
        sa.Column("session_type", sa.String(20), nullable=False, server_default="practice"),
        sa.Column("difficulty", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("questions", sa.JSON(), nullable=False),
        sa.Column("questions_answered", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("questions_correct", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hearts_lost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_bonus", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_perfect", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="in_progress"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_lesson_sessions_learner_id", "lesson_sessions", ["learner_id"])

    # Create lesson_answers table
    op.create_table(
        "lesson_answers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(36), nullable=False),
        sa.Column("question_id", sa.String(64), nullable=False),
        sa.Column("learner_answer", sa.JSON(), nullable=True),
        sa.Column("is_correct", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("max_score", sa.Float(), nullable=False, server_default="1"),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("xp_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("heart_deducted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "answered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(["session_id"], ["lesson_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id", "question_id", name="uq_lesson_answer_question"),
    )
    op.create_index("ix_lesson_answers_session_id", "lesson_answers", ["session_id"])

    # Create hearts_pools table
    op.create_table(
        "hearts_pools",
        sa.Column("learner_id", sa.String(128), nullable=False),
        sa.Column("hearts", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("max_hearts", sa.Integer(), nullable=False, server_default="5"),
        sa.Column(
            "last_refill_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("unlimited_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("learner_id"),
    )

    # Create streak_records table
    op.create_table(
        "streak_records",
        sa.Column("learner_id", sa.String(128), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active_date", sa.Date(), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("learner_id"),
    )

    # Create daily_progress table
    op.create_table(
        "daily_progress",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("learner_id", sa.String(128), nullable=False),
        sa.Column("activity_date", sa.Date(), nullable=False),
        sa.Column("xp_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lessons_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("perfect_lessons", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("goal_xp", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("learner_id", "activity_date", name="uq_daily_progress_learner_date"),
    )
    op.create_index("ix_daily_progress_learner_id", "daily_progress", ["learner_id"])
    op.create_index("ix_daily_progress_activity_date", "daily_progress", ["activity_date"])

    # Create user_achievements table
    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("learner_id", sa.String(128), nullable=False),
        sa.Column("achievement_id", sa.String(64), nullable=False),
        sa.Column(
            "earned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("learner_id", "achievement_id", name="uq_user_achievement"),
    )
    op.create_index("ix_user_achievements_learner_id", "user_achievements", ["learner_id"])

    # Create user_quest_progress table
    op.create_table(
        "user_quest_progress",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("learner_id", sa.String(128), nullable=False),
        sa.Column("quest_id", sa.String(64), nullable=False),
        sa.Column("quest_date", sa.Date(), nullable=False),
        sa.Column("current_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("target_value", sa.Integer(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_claimed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("learner_id", "quest_id", "quest_date", name="uq_user_quest_day"),
    )
    op.create_index("ix_user_quest_progress_learner_id", "user_quest_progress", ["learner_id"])

    # Create reward_events table
    op.create_table(
        "reward_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("learner_id", sa.String(128), nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("source_id", sa.String(64), nullable=False),
        sa.Column("reward_type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reward_events_learner_id", "reward_events", ["learner_id"])


def downgrade() -> None:
    op.drop_index("ix_reward_events_learner_id", table_name="reward_events")
    op.drop_table("reward_events")
    op.drop_index("ix_user_quest_progress_learner_id", table_name="user_quest_progress")
    op.drop_table("user_quest_progress")
    op.drop_index("ix_user_achievements_learner_id", table_name="user_achievements")
    op.drop_table("user_achievements")
    op.drop_index("ix_daily_progress_activity_date", table_name="daily_progress")
    op.drop_index("ix_daily_progress_learner_id", table_name="daily_progress")
    op.drop_table("daily_progress")
    op.drop_table("streak_records")
    op.drop_table("hearts_pools")
    op.drop_index("ix_lesson_answers_session_id", table_name="lesson_answers")
    op.drop_table("lesson_answers")
    op.drop_index("ix_lesson_sessions_learner_id", table_name="lesson_sessions")
    op.drop_table("lesson_sessions")
    op.drop_index("ix_skill_progress_skill_node_id", table_name="skill_progress")
    op.drop_index("ix_skill_progress_learner_id", table_name="skill_progress")
    op.drop_table("skill_progress")
