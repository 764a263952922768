from enum import Enum
from typing import FrozenSet, List

from pydantic import BaseModel, Field


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    NON_BINARY = "Non-binary"
    PREFER_NOT_TO_SAY = "Prefer not to say"


class GroupingStrategy(str, Enum):
    STRICT = "strict"
    RELAXED_CONSTRAINTS = "relaxedConstraints"
    FORCED_PLACEMENT = "forcedPlacement"
    FAILED = "failed"


class StudentRecord(BaseModel):
    """
    Lightweight projection of a student, as seen by the grouping engine.
    separation_ids may be asymmetric; the engine unions both directions.
    """
    id: str
    name: str = ""
    gender: Gender = Gender.PREFER_NOT_TO_SAY
    needs_help: bool = False
    is_support_partner: bool = False
    separation_ids: FrozenSet[str] = Field(default_factory=frozenset)


class GroupingResult(BaseModel):
    groups: List[List[str]] = Field(default_factory=list)
    strategy: GroupingStrategy = GroupingStrategy.STRICT
    separation_conflicts: int = 0
    unassigned_count: int = 0
    attempts: int = 0

    @property
    def group_sizes(self) -> List[int]:
        return [len(g) for g in self.groups]
