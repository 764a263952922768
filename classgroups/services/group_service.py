import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from classgroups.config.settings import settings
from classgroups.domain.grouping import GroupingOptions
from classgroups.domain.grouping_engine import generate_groups
from classgroups.domain.models import GroupingResult, GroupingStrategy, StudentRecord
from classgroups.services.roster_service import RosterStudent, to_student_records, unique_roster

logger = logging.getLogger(__name__)

Engine = Callable[[Sequence[StudentRecord], int, GroupingOptions], GroupingResult]


@dataclass
class GenerationNotice:
    text: str
    is_warning: bool


@dataclass
class GeneratedGroups:
    groups: List[List[RosterStudent]]
    result: Optional[GroupingResult]
    notice: Optional[GenerationNotice]

    @property
    def names(self) -> List[List[str]]:
        return [[s.name for s in g] for g in self.groups]


def engine_notice(result: GroupingResult, group_count: int) -> GenerationNotice:
    """User-facing status line for a grouping result."""
    if group_count == 0:
        return GenerationNotice("No groups were generated.", True)

    if result.strategy == GroupingStrategy.STRICT:
        return GenerationNotice(f"Generated {group_count} balanced groups.", False)

    if result.strategy == GroupingStrategy.RELAXED_CONSTRAINTS:
        if result.separation_conflicts > 0:
            return GenerationNotice(
                "Used fallback strategy: constraints were relaxed and "
                f"{result.separation_conflicts} separation conflict(s) remain.",
                True,
            )
        return GenerationNotice(
            "Used fallback strategy: regenerated with relaxed ordering to satisfy constraints.",
            False,
        )

    if result.strategy == GroupingStrategy.FORCED_PLACEMENT:
        return GenerationNotice(
            f"Used emergency fallback placement. {result.separation_conflicts} separation conflict(s) remain.",
            True,
        )

    return GenerationNotice(
        f"Could not satisfy all rules. {result.unassigned_count} student(s) could not be assigned.",
        True,
    )


class GroupGeneratorService:
    def __init__(self, engine: Engine = None, default_group_size: int = None):
        self.engine = engine or generate_groups
        self.default_group_size = settings.GROUP_SIZE_DEFAULT if default_group_size is None else default_group_size

    def generate(
        self,
        roster: Sequence[RosterStudent],
        group_size: int = None,
        balance_gender: bool = False,
        balance_ability: bool = False,
        pair_support_partners: bool = False,
        respect_separations: bool = False,
        seed: int = 0,
    ) -> GeneratedGroups:
        if not roster:
            return GeneratedGroups(groups=[], result=None, notice=None)

        options = GroupingOptions(
            balance_gender=balance_gender,
            balance_ability=balance_ability,
            pair_support_partners=pair_support_partners,
            respect_separations=respect_separations,
            seed=seed,
        )
        records = to_student_records(roster)
        if group_size is None:
            group_size = self.default_group_size
        result = self.engine(records, group_size, options)

        by_id = {s.uuid: s for s in unique_roster(roster)}
        groups = [[by_id[sid] for sid in g if sid in by_id] for g in result.groups]
        groups = [g for g in groups if g]

        notice = engine_notice(result, len(groups))
        if notice.is_warning:
            logger.warning("group generation degraded (%s): %s", result.strategy.value, notice.text)
        else:
            logger.info(notice.text)
        return GeneratedGroups(groups=groups, result=result, notice=notice)
