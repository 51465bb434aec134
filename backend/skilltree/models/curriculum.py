"""
Curriculum Catalog Models

Pydantic models for the static, read-only catalog: skill units, skill
nodes, achievement definitions and daily quest definitions. Loaded once
from config/curriculum.yaml and never mutated at runtime.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from skilltree.enums.learning import CriteriaType, RewardType


class CatalogModel(BaseModel):
    """Base for catalog entries: frozen and strict about unknown keys."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class SkillUnit(CatalogModel):
    """A group of skill nodes shown together in the tree."""

    id: str
    name: str
    description: str = ""
    icon: Optional[str] = None
    color: Optional[str] = None
    is_elective: bool = False


class SkillNode(CatalogModel):
    """
    One unit of curriculum.

    A node with no prerequisites is a root and is always unlocked.
    """

    id: str
    unit_id: str
    name: str
    description: str = ""
    order: int
    prerequisites: tuple[str, ...] = ()
    icon: Optional[str] = None
    topic_key: Optional[str] = None
    is_elective: bool = False
    has_extension: bool = False

    @property
    def is_root(self) -> bool:
        return not self.prerequisites


class AchievementDefinition(CatalogModel):
    """
    Badge definition.

    criteria_value is a count for every criteria type except
    UNIT_COMPLETE, where it names the unit.
    """

    id: str
    name: str
    description: str = ""
    criteria_type: CriteriaType
    criteria_value: Union[int, str]
    tier: int = Field(default=1, ge=1, le=3)
    xp_reward: int = Field(default=0, ge=0)
    reward_type: Optional[RewardType] = None  # Extra currency reward, if any
    reward_amount: int = Field(default=0, ge=0)

    @field_validator("criteria_value")
    @classmethod
    def _count_criteria_positive(cls, value, info):
        criteria_type = info.data.get("criteria_type")
        if criteria_type == CriteriaType.UNIT_COMPLETE:
            if not isinstance(value, str):
                raise ValueError("unit_complete criteria must name a unit id")
        elif not isinstance(value, int) or value <= 0:
            raise ValueError("count criteria must be a positive integer")
        return value


class QuestDefinition(CatalogModel):
    """Daily quest definition. Progress is measured against today's totals."""

    id: str
    name: str
    icon: Optional[str] = None
    criteria_type: CriteriaType
    criteria_value: int = Field(gt=0)
    reward_type: RewardType
    reward_amount: int = Field(gt=0)
    display_order: int = 0
    is_active: bool = True

    @field_validator("criteria_type")
    @classmethod
    def _daily_criteria_only(cls, value):
        if value == CriteriaType.UNIT_COMPLETE:
            raise ValueError("unit_complete cannot be a daily quest criterion")
        return value


class Curriculum(CatalogModel):
    """The whole catalog."""

    units: tuple[SkillUnit, ...]
    nodes: tuple[SkillNode, ...]
    achievements: tuple[AchievementDefinition, ...] = ()
    quests: tuple[QuestDefinition, ...] = ()
