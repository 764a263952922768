# classgroups/domain/grouping_engine.py
"""
Student grouping engine.

Pure, synchronous entry point: takes a snapshot of students and options and
returns a GroupingResult. Nothing is kept between calls and no input raises;
degradation is reported through the result's strategy instead.

Strategy tiers:
- strict: the first attempt placed everyone without separation conflicts;
  the remaining attempts are still generated and the best balanced one wins
- relaxedConstraints: a reordered retry found zero conflicts, or fewer than
  the first attempt
- forcedPlacement: retries could not improve on the first attempt, so some
  separated students share a group
- failed: students could not be placed at all (defensive; not reachable
  with the balanced partition)
"""
import logging
import random
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence

from classgroups.domain.balancer import (
    Bucket,
    ClassProfile,
    ability_balance_penalty,
    assign_students,
    gender_balance_penalty,
    rebalance,
    support_partner_penalty,
)
from classgroups.domain.constraints import (
    ConstraintPair,
    build_separation_pairs,
    count_separation_conflicts,
)
from classgroups.domain.grouping import GroupingOptions
from classgroups.domain.models import GroupingResult, GroupingStrategy, StudentRecord
from classgroups.domain.partition import clamp_group_size, partition_into_groups, target_group_sizes
from classgroups.domain.separation import repair_separations

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    index: int
    groups: List[List[str]]
    unassigned: List[str] = field(default_factory=list)
    separation_conflicts: int = 0
    support_penalty: float = 0.0
    gender_penalty: float = 0.0
    ability_penalty: float = 0.0

    @property
    def unassigned_count(self) -> int:
        return len(self.unassigned)

    @property
    def is_clean(self) -> bool:
        return not self.unassigned and self.separation_conflicts == 0


def candidate_rank(candidate: Candidate):
    """
    Sort key for candidates, lowest is best: placement, then separation
    conflicts, then pairing, ability and gender balance, then generation order.
    """
    return (
        candidate.unassigned_count,
        candidate.separation_conflicts,
        candidate.support_penalty,
        candidate.ability_penalty,
        candidate.gender_penalty,
        candidate.index,
    )


def select_best(candidates: Sequence[Candidate]) -> Optional[Candidate]:
    if not candidates:
        return None
    return min(candidates, key=candidate_rank)


def build_candidate(
    index: int,
    students: Sequence[StudentRecord],
    group_size: int,
    pairs: FrozenSet[ConstraintPair],
    options: GroupingOptions,
    profile: ClassProfile,
) -> Candidate:
    rng = random.Random(options.attempt_seed(index))
    by_id = {s.id: s for s in students}

    if not options.uses_advanced_rules:
        # size-only grouping: shuffle and slice
        ids = [s.id for s in students]
        rng.shuffle(ids)
        groups = partition_into_groups(ids, group_size)
        unassigned = []
    else:
        target_sizes = target_group_sizes(len(students), group_size)
        buckets, unassigned = assign_students(students, target_sizes, pairs, options, rng, profile)
        groups = [b.member_ids for b in buckets if b.members]

        if options.respect_separations:
            repair_separations(groups, students, pairs)

        buckets = [Bucket(target_size=len(g), members=[by_id[sid] for sid in g]) for g in groups]
        swaps = rebalance(buckets, pairs, options)
        if swaps:
            logger.debug("attempt %d: %d balancing swaps", index, swaps)
        groups = [b.member_ids for b in buckets]

    records = [[by_id[sid] for sid in g] for g in groups]
    return Candidate(
        index=index,
        groups=groups,
        unassigned=[s.id for s in unassigned],
        separation_conflicts=count_separation_conflicts(groups, pairs),
        support_penalty=support_partner_penalty(records, options.pair_support_partners),
        gender_penalty=gender_balance_penalty(records, profile, options.balance_gender),
        ability_penalty=ability_balance_penalty(records, profile, options.balance_ability),
    )


def _unique_students(students: Sequence[StudentRecord]) -> List[StudentRecord]:
    seen = set()
    unique = []
    for s in students:
        if s.id in seen:
            logger.warning("duplicate student id %s ignored", s.id)
            continue
        seen.add(s.id)
        unique.append(s)
    return unique


def _result(best: Candidate, strategy: GroupingStrategy, attempts: int) -> GroupingResult:
    return GroupingResult(
        groups=best.groups,
        strategy=strategy,
        separation_conflicts=best.separation_conflicts,
        unassigned_count=best.unassigned_count,
        attempts=attempts,
    )


def generate_groups(
    students: Sequence[StudentRecord],
    preferred_group_size: int,
    options: Optional[GroupingOptions] = None,
) -> GroupingResult:
    """
    Split students into groups of about preferred_group_size.

    Example:
    >>> students = [StudentRecord(id=str(i)) for i in range(8)]
    >>> generate_groups(students, 4).group_sizes
    [4, 4]
    """
    options = options or GroupingOptions()
    students = _unique_students(students)
    if not students:
        return GroupingResult(groups=[], strategy=GroupingStrategy.STRICT)

    group_size = clamp_group_size(preferred_group_size)
    pairs = build_separation_pairs(students, enabled=options.respect_separations)
    profile = ClassProfile.of(students)

    strict = build_candidate(0, students, group_size, pairs, options, profile)
    candidates = [strict]
    for attempt in range(1, options.max_attempts):
        candidate = build_candidate(attempt, students, group_size, pairs, options, profile)
        logger.debug(
            "attempt %d: %d conflicts, %d unassigned",
            attempt, candidate.separation_conflicts, candidate.unassigned_count,
        )
        candidates.append(candidate)

    # a clean first attempt keeps the strict label; the rest of the budget
    # only buys better balance
    best = select_best(candidates)
    if strict.is_clean:
        strategy = GroupingStrategy.STRICT
    elif best.unassigned_count:
        strategy = GroupingStrategy.FAILED
    elif best.index != strict.index and (
        best.separation_conflicts == 0
        or best.separation_conflicts < strict.separation_conflicts
    ):
        strategy = GroupingStrategy.RELAXED_CONSTRAINTS
    else:
        strategy = GroupingStrategy.FORCED_PLACEMENT

    logger.debug(
        "grouping resolved as %s after %d attempts (%d conflicts)",
        strategy.value, len(candidates), best.separation_conflicts,
    )
    return _result(best, strategy, attempts=len(candidates))
