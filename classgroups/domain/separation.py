# classgroups/domain/separation.py
"""
Separation enforcer: local swap repair for students that must be kept apart.
"""
import logging
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from classgroups.config.settings import settings
from classgroups.domain.constraints import ConstraintPair, conflicting_pairs, conflicts_with
from classgroups.domain.models import StudentRecord

logger = logging.getLogger(__name__)


def _similarity(a: StudentRecord, b: StudentRecord) -> int:
    return (
        (a.gender == b.gender)
        + (a.needs_help == b.needs_help)
        + (a.is_support_partner == b.is_support_partner)
    )


def _find_swap(
    groups: List[List[str]],
    source: int,
    mover: str,
    students: Dict[str, StudentRecord],
    pairs: FrozenSet[ConstraintPair],
) -> Optional[Tuple[int, int]]:
    """
    (destination group, position) of a student that can trade places with
    mover without creating a conflict on either side.
    """
    source_rest = [m for m in groups[source] if m != mover]
    options = []
    for dest, group in enumerate(groups):
        if dest == source:
            continue
        for pos, other in enumerate(group):
            dest_rest = [m for m in group if m != other]
            if conflicts_with(mover, dest_rest, pairs):
                continue
            if conflicts_with(other, source_rest, pairs):
                continue
            options.append((-_similarity(students[mover], students[other]), dest, pos))
    if not options:
        return None
    _, dest, pos = min(options)
    return dest, pos


def repair_separations(
    groups: List[List[str]],
    students: Sequence[StudentRecord],
    pairs: FrozenSet[ConstraintPair],
    max_swaps: Optional[int] = None,
) -> int:
    """
    Swap students between groups, in place, to break up separated pairs.

    Every accepted swap strictly lowers the conflict count and keeps group
    sizes unchanged. Repair is best effort: conflicts that cannot be resolved
    within max_swaps are left for the caller to report.
    Returns the number of swaps performed.
    """
    if not pairs:
        return 0
    if max_swaps is None:
        max_swaps = settings.SEPARATION_REPAIR_FACTOR * len(students)

    by_id = {s.id: s for s in students}
    swaps = 0
    while swaps < max_swaps:
        conflicts = conflicting_pairs(groups, pairs)
        if not conflicts:
            break

        swapped = False
        for pair in conflicts:
            source = next(i for i, g in enumerate(groups) if pair[0] in g)
            for mover in pair:
                target = _find_swap(groups, source, mover, by_id, pairs)
                if target is None:
                    continue
                dest, pos = target
                other = groups[dest][pos]
                groups[dest][pos] = mover
                groups[source][groups[source].index(mover)] = other
                logger.debug("separation swap %s <-> %s (group %d <-> %d)", mover, other, source, dest)
                swaps += 1
                swapped = True
                break
            if swapped:
                break

        if not swapped:
            break

    return swaps
