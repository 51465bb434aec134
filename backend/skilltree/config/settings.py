"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from skilltree.config import settings

    # Access settings
    db_url = settings.DATABASE_URL_RESOLVED
    max_hearts = settings.HEARTS_MAX
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

from skilltree.enums.api import RateLimitType


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Skill Tree"
    DEBUG: bool = False

    # Database. DATABASE_URL wins over the POSTGRES_* parts when set.
    DATABASE_URL: Optional[str] = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "skilltree"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "skilltree"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def DATABASE_URL_RESOLVED(self) -> str:
        """Connection URL actually used by the engine."""
        return self.DATABASE_URL or self.POSTGRES_URL

    # XP rewards and level thresholds (index = level)
    XP_CORRECT_ANSWER: int = 10
    XP_LESSON_COMPLETE: int = 20
    XP_PERFECT_LESSON: int = 50
    LEVEL_THRESHOLDS: list[int] = [0, 50, 150, 350, 700, 1200]

    # Lessons
    QUESTIONS_PER_LESSON: int = 5
    MIN_DIFFICULTY: int = 1
    MAX_DIFFICULTY: int = 5
    BEGINNER_MAX_LEVEL: int = 1  # Learners at or below this level get any difficulty
    FREE_TEXT_MIN_LENGTH: int = 3
    QUESTION_BANK_PATH: Optional[str] = None  # Defaults to the packaged sample bank

    # Hearts
    HEARTS_MAX: int = 5
    HEARTS_REFILL_INTERVAL_HOURS: float = 4
    HEARTS_UNLIMITED_DEFAULT_HOURS: float = 24

    # Spaced repetition
    REVIEW_BASE_INTERVAL_HOURS: int = 24
    REVIEW_PASS_ACCURACY: float = 0.5
    REVIEW_FAIL_MULTIPLIER: float = 0.5
    REVIEW_QUEUE_LIMIT: int = 10
    STRENGTH_MIN: float = 0.2
    STRENGTH_MAX: float = 1.0
    STRENGTH_PRACTICE_GAIN: float = 0.1
    STRENGTH_DUE_THRESHOLD: float = 0.5
    DECAY_GRACE_DAYS: int = 3
    DECAY_PER_DAY: float = 0.05

    # Streaks and daily goals
    DAILY_GOAL_XP: int = 50
    STREAK_MILESTONES: list[int] = [3, 7, 14, 30, 60, 100, 365]
    ACTIVITY_DEFAULT_DAYS: int = 30
    ACTIVITY_MAX_DAYS: int = 90
    LEARNER_TIMEZONE: str = "UTC"

    # Daily quests
    QUESTS_PER_DAY: int = 4

    # Free-text grading (model-agnostic via LiteLLM)
    # Format: provider/model-name
    GRADING_ENABLED: bool = True
    GRADING_MODEL: str = "openai/gpt-5-mini"
    GRADING_PASS_SCORE: int = 60
    OPENAI_API_KEY: str = ""
    ANTHROPIC_API_KEY: str = ""
    DEEPSEEK_API_KEY: str = ""

    # API
    CORS_ORIGINS: list[str] = ["*"]
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"
    RATE_LIMIT_ANSWER: str = "60/minute"

    def get_rate_limit(self, rate_limit_type: RateLimitType) -> str:
        """Rate limit string for an endpoint category."""
        limits = {
            RateLimitType.DEFAULT: self.RATE_LIMIT_DEFAULT,
            RateLimitType.ANSWER: self.RATE_LIMIT_ANSWER,
        }
        return limits.get(rate_limit_type, self.RATE_LIMIT_DEFAULT)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
