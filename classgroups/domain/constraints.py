# classgroups/domain/constraints.py
"""
Pairwise separation constraints.

A constraint is an unordered pair of student ids stored as a sorted tuple, so
(a, b) and (b, a) are the same constraint.
"""
from typing import Dict, FrozenSet, Iterable, List, Sequence, Tuple

from classgroups.domain.models import StudentRecord

ConstraintPair = Tuple[str, str]


def pair_key(id_a: str, id_b: str) -> ConstraintPair:
    return (id_a, id_b) if id_a < id_b else (id_b, id_a)


def build_separation_pairs(
    students: Sequence[StudentRecord], enabled: bool = True
) -> FrozenSet[ConstraintPair]:
    """
    Union of every student's separation list. Self references and ids that
    are not part of this class are ignored.

    Example:
    >>> a = StudentRecord(id="a", separation_ids={"b", "a"})
    >>> b = StudentRecord(id="b")
    >>> sorted(build_separation_pairs([a, b]))
    [('a', 'b')]
    """
    if not enabled:
        return frozenset()

    known_ids = {s.id for s in students}
    pairs = set()
    for student in students:
        for other_id in student.separation_ids:
            if other_id != student.id and other_id in known_ids:
                pairs.add(pair_key(student.id, other_id))
    return frozenset(pairs)


def separation_degree(pairs: Iterable[ConstraintPair]) -> Dict[str, int]:
    degree: Dict[str, int] = {}
    for first, second in pairs:
        degree[first] = degree.get(first, 0) + 1
        degree[second] = degree.get(second, 0) + 1
    return degree


def conflicts_with(student_id: str, member_ids: Iterable[str], pairs: FrozenSet[ConstraintPair]) -> int:
    """Number of members student_id must be kept apart from."""
    if not pairs:
        return 0
    return sum(1 for m in member_ids if m != student_id and pair_key(student_id, m) in pairs)


def conflicting_pairs(
    groups: Sequence[Sequence[str]], pairs: FrozenSet[ConstraintPair]
) -> List[ConstraintPair]:
    found = []
    if not pairs:
        return found
    for group in groups:
        for i in range(len(group) - 1):
            for j in range(i + 1, len(group)):
                key = pair_key(group[i], group[j])
                if key in pairs:
                    found.append(key)
    return found


def count_separation_conflicts(
    groups: Sequence[Sequence[str]], pairs: FrozenSet[ConstraintPair]
) -> int:
    return len(conflicting_pairs(groups, pairs))
