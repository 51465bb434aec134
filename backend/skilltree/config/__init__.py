"""Configuration package."""

from skilltree.config.curriculum import load_curriculum, parse_curriculum
from skilltree.config.settings import Settings, get_settings, settings

__all__ = [
    # Application settings
    "Settings",
    "get_settings",
    "settings",
    # Curriculum catalog
    "load_curriculum",
    "parse_curriculum",
]
