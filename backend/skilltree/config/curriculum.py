"""
Curriculum Catalog Loader

Reads the static catalog (units, skill nodes, achievements, daily quests)
from YAML and validates it into frozen pydantic models.

Usage:
    from skilltree.config import load_curriculum

    curriculum = load_curriculum()
    print(len(curriculum.nodes))
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml

from skilltree.models.curriculum import Curriculum

DEFAULT_CURRICULUM_PATH = Path(__file__).parent / "curriculum.yaml"


def parse_curriculum(data: dict[str, Any]) -> Curriculum:
    """Validate a raw catalog mapping."""
    return Curriculum.model_validate(data)


@lru_cache()
def load_curriculum(path: Optional[str] = None) -> Curriculum:
    """
    Load and cache the curriculum catalog.

    Args:
        path: Optional YAML path; defaults to the catalog shipped with the package.

    Returns:
        Validated Curriculum.
    """
    config_path = Path(path) if path else DEFAULT_CURRICULUM_PATH

    with open(config_path, encoding="utf-8") as f:
        return parse_curriculum(yaml.safe_load(f) or {})
