# classgroups/domain/balancer.py
"""
Greedy balancer.

Places students one at a time into buckets of fixed capacity, then improves
the result with swaps. Objectives, highest priority first:

- pairing: buckets with needs-help students should get a support partner
- ability: needs-help students spread evenly over the buckets
- gender: each gender spread evenly over the buckets

Placement scores are tuples compared in that order, so a lower objective
never outweighs a higher one. The swap pass settles what greedy placement
leaves uneven; the orchestrator retries with other orderings on top.
"""
import math
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from classgroups.domain.constraints import ConstraintPair, conflicts_with, separation_degree
from classgroups.domain.grouping import GroupingOptions
from classgroups.domain.models import Gender, StudentRecord

UNPAIRED_PENALTY = 180.0
PARTNER_BONUS = 90.0
PARTNER_COVERAGE_BONUS = 15.0
HELPED_BONUS = 60.0
GENDER_OVERFLOW_STEP = 100.0


@dataclass
class Bucket:
    target_size: int
    members: List[StudentRecord] = field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.target_size

    @property
    def member_ids(self) -> List[str]:
        return [m.id for m in self.members]

    @property
    def needs_help_count(self) -> int:
        return sum(1 for m in self.members if m.needs_help)

    @property
    def has_support_partner(self) -> bool:
        return any(m.is_support_partner for m in self.members)

    def gender_count(self, gender: Gender) -> int:
        return sum(1 for m in self.members if m.gender == gender)


@dataclass
class ClassProfile:
    """Class-wide ratios the per-bucket objectives aim for."""
    gender_ratios: Dict[Gender, float]
    needs_help_ratio: float

    @classmethod
    def of(cls, students: Sequence[StudentRecord]) -> "ClassProfile":
        if not students:
            return cls(gender_ratios={}, needs_help_ratio=0.0)
        total = len(students)
        counts: Dict[Gender, int] = {}
        for s in students:
            counts[s.gender] = counts.get(s.gender, 0) + 1
        return cls(
            gender_ratios={g: c / total for g, c in counts.items()},
            needs_help_ratio=sum(1 for s in students if s.needs_help) / total,
        )


def order_students(
    students: Sequence[StudentRecord],
    pairs: FrozenSet[ConstraintPair],
    options: GroupingOptions,
    rng: random.Random,
) -> List[StudentRecord]:
    """
    Placement order: most constrained first, then needs-help students, then
    support partners, with the shuffle as the final tie-break.
    """
    shuffled = list(students)
    rng.shuffle(shuffled)
    random_rank = {s.id: i for i, s in enumerate(shuffled)}
    degree = separation_degree(pairs)
    help_first = options.balance_ability or options.pair_support_partners

    def sort_key(s: StudentRecord):
        return (
            -degree.get(s.id, 0),
            0 if (help_first and s.needs_help) else 1,
            0 if (options.pair_support_partners and s.is_support_partner) else 1,
            random_rank[s.id],
        )

    return sorted(shuffled, key=sort_key)


def placement_score(
    student: StudentRecord,
    bucket: Bucket,
    conflict_count: int,
    options: GroupingOptions,
    profile: ClassProfile,
) -> Tuple[int, float, float, float, float]:
    """
    Cost of putting student into bucket, lowest is best:
    (separation conflicts, pairing, ability, gender, fill).
    """
    pairing = 0.0
    if options.pair_support_partners:
        help_in_bucket = bucket.needs_help_count
        has_partner = bucket.has_support_partner
        projected_has_help = help_in_bucket > 0 or student.needs_help
        projected_has_partner = has_partner or student.is_support_partner
        if projected_has_help and not projected_has_partner:
            pairing += UNPAIRED_PENALTY
        if student.is_support_partner and help_in_bucket and not has_partner:
            pairing -= PARTNER_BONUS + (help_in_bucket - 1) * PARTNER_COVERAGE_BONUS
        if student.needs_help and has_partner:
            pairing -= HELPED_BONUS

    ability = 0.0
    if options.balance_ability:
        projected_help = bucket.needs_help_count + (1 if student.needs_help else 0)
        projected_ratio = projected_help / (len(bucket.members) + 1)
        ability = abs(projected_ratio - profile.needs_help_ratio)

    gender = 0.0
    if options.balance_gender:
        target = profile.gender_ratios.get(student.gender, 0.0) * bucket.target_size
        projected = bucket.gender_count(student.gender) + 1
        gender = abs(projected - target)
        allowed = math.ceil(target)
        if projected > allowed:
            gender += (projected - allowed) * GENDER_OVERFLOW_STEP

    fill = len(bucket.members) / max(bucket.target_size, 1)
    return conflict_count, pairing, ability, gender, fill


def best_bucket_index(
    student: StudentRecord,
    buckets: Sequence[Bucket],
    pairs: FrozenSet[ConstraintPair],
    options: GroupingOptions,
    profile: ClassProfile,
    allow_conflicts: bool,
) -> Optional[int]:
    best_index = None
    best_score = None
    for index, bucket in enumerate(buckets):
        if bucket.is_full:
            continue
        conflict_count = conflicts_with(student.id, bucket.member_ids, pairs)
        if conflict_count and not allow_conflicts:
            continue
        score = placement_score(student, bucket, conflict_count, options, profile)
        if best_score is None or score < best_score:
            best_score = score
            best_index = index
    return best_index


def least_filled_index(buckets: Sequence[Bucket]) -> Optional[int]:
    if not buckets:
        return None
    return min(range(len(buckets)), key=lambda i: len(buckets[i].members))


def assign_students(
    students: Sequence[StudentRecord],
    target_sizes: Sequence[int],
    pairs: FrozenSet[ConstraintPair],
    options: GroupingOptions,
    rng: random.Random,
    profile: Optional[ClassProfile] = None,
):
    """
    Fill buckets with the given capacities.
    Returns (buckets, unassigned students).
    """
    profile = profile or ClassProfile.of(students)
    buckets = [Bucket(target_size=size) for size in target_sizes]
    leftovers = []

    for student in order_students(students, pairs, options, rng):
        index = best_bucket_index(student, buckets, pairs, options, profile, allow_conflicts=False)
        if index is None:
            index = best_bucket_index(student, buckets, pairs, options, profile, allow_conflicts=True)
        if index is None:
            leftovers.append(student)
            continue
        buckets[index].members.append(student)

    # capacities always add up to the class size, so this only triggers on bad input
    unassigned = []
    for student in leftovers:
        index = least_filled_index(buckets)
        if index is None:
            unassigned.append(student)
        else:
            buckets[index].members.append(student)

    return buckets, unassigned


# -------------------------------
# Swap pass
# -------------------------------

@dataclass
class _Tally:
    needs_help: int
    partners: int
    genders: Dict[Gender, int]
    gender_squares: int

    @classmethod
    def of(cls, members: Sequence[StudentRecord]) -> "_Tally":
        genders = Counter(m.gender for m in members)
        return cls(
            needs_help=sum(1 for m in members if m.needs_help),
            partners=sum(1 for m in members if m.is_support_partner),
            genders=genders,
            gender_squares=sum(c * c for c in genders.values()),
        )

    def after_swap(self, leaving: StudentRecord, joining: StudentRecord) -> Tuple[int, int, int]:
        gender_squares = self.gender_squares
        if leaving.gender != joining.gender:
            gender_squares += 2 * (self.genders.get(joining.gender, 0) - self.genders[leaving.gender] + 1)
        return (
            self.needs_help - leaving.needs_help + joining.needs_help,
            self.partners - leaving.is_support_partner + joining.is_support_partner,
            gender_squares,
        )


def _bucket_terms(needs_help: int, partners: int, gender_squares: int, options: GroupingOptions):
    """
    (needs-help students without a partner, bucket without a partner,
    needs-help count squared, sum of squared gender counts).
    Squared counts shrink exactly when a category is spread more evenly.
    """
    unpaired = options.pair_support_partners and partners == 0
    return (
        needs_help if unpaired else 0,
        1 if unpaired else 0,
        needs_help * needs_help if options.balance_ability else 0,
        gender_squares if options.balance_gender else 0,
    )


def _swap_delta(
    a: Bucket, tally_a: _Tally, x: StudentRecord,
    b: Bucket, tally_b: _Tally, y: StudentRecord,
    pairs: FrozenSet[ConstraintPair],
    options: GroupingOptions,
):
    conflicts = 0
    if pairs:
        rest_a = [m for m in a.member_ids if m != x.id]
        rest_b = [m for m in b.member_ids if m != y.id]
        conflicts = (
            conflicts_with(y.id, rest_a, pairs) + conflicts_with(x.id, rest_b, pairs)
            - conflicts_with(x.id, rest_a, pairs) - conflicts_with(y.id, rest_b, pairs)
        )

    before = [
        p + q for p, q in zip(
            _bucket_terms(tally_a.needs_help, tally_a.partners, tally_a.gender_squares, options),
            _bucket_terms(tally_b.needs_help, tally_b.partners, tally_b.gender_squares, options),
        )
    ]
    after = [
        p + q for p, q in zip(
            _bucket_terms(*tally_a.after_swap(x, y), options),
            _bucket_terms(*tally_b.after_swap(y, x), options),
        )
    ]
    return (conflicts,) + tuple(n - o for n, o in zip(after, before))


def _best_swap(buckets: Sequence[Bucket], pairs: FrozenSet[ConstraintPair], options: GroupingOptions):
    tallies = [_Tally.of(b.members) for b in buckets]
    constrained = {sid for pair in pairs for sid in pair}
    no_change = (0, 0, 0, 0, 0)
    best = None
    best_delta = no_change
    for i in range(len(buckets) - 1):
        for j in range(i + 1, len(buckets)):
            for x in buckets[i].members:
                for y in buckets[j].members:
                    separated = x.id in constrained or y.id in constrained
                    if not separated and (
                        x.gender == y.gender
                        and x.needs_help == y.needs_help
                        and x.is_support_partner == y.is_support_partner
                    ):
                        continue
                    delta = _swap_delta(
                        buckets[i], tallies[i], x, buckets[j], tallies[j], y,
                        pairs if separated else frozenset(), options,
                    )
                    if delta < best_delta:
                        best_delta = delta
                        best = (i, x, j, y)
    return best


def rebalance(
    buckets: Sequence[Bucket],
    pairs: FrozenSet[ConstraintPair],
    options: GroupingOptions,
    max_swaps: Optional[int] = None,
) -> int:
    """
    Swap students between buckets, in place, while a swap strictly improves
    (separation conflicts, needs-help students without a partner, buckets
    without a partner, needs-help spread, gender spread), compared in that
    order. Bucket sizes never change and conflicts never go up.

    At the end no single swap can improve, so a category whose counts differ
    by two or more between buckets is only left that way when evening it out
    would cost a higher objective.
    Returns the number of swaps performed.
    """
    if not (options.pair_support_partners or options.balance_ability or options.balance_gender):
        return 0
    if max_swaps is None:
        max_swaps = sum(len(b.members) for b in buckets) ** 2

    swaps = 0
    while swaps < max_swaps:
        move = _best_swap(buckets, pairs, options)
        if move is None:
            break
        i, x, j, y = move
        buckets[i].members[buckets[i].members.index(x)] = y
        buckets[j].members[buckets[j].members.index(y)] = x
        swaps += 1
    return swaps


# -------------------------------
# Candidate metrics
# -------------------------------

def support_partner_penalty(groups: Sequence[Sequence[StudentRecord]], enabled: bool) -> float:
    """Groups that have a needs-help student but no support partner."""
    if not enabled:
        return 0.0
    penalty = 0.0
    for group in groups:
        if any(s.needs_help for s in group) and not any(s.is_support_partner for s in group):
            penalty += 1
    return penalty


def gender_balance_penalty(
    groups: Sequence[Sequence[StudentRecord]], profile: ClassProfile, enabled: bool
) -> float:
    if not enabled:
        return 0.0
    penalty = 0.0
    for group in groups:
        if not group:
            continue
        for gender, ratio in profile.gender_ratios.items():
            actual = sum(1 for s in group if s.gender == gender)
            penalty += abs(actual - ratio * len(group))
    return penalty


def ability_balance_penalty(
    groups: Sequence[Sequence[StudentRecord]], profile: ClassProfile, enabled: bool
) -> float:
    if not enabled:
        return 0.0
    penalty = 0.0
    for group in groups:
        if not group:
            continue
        actual = sum(1 for s in group if s.needs_help) / len(group)
        penalty += abs(actual - profile.needs_help_ratio)
    return penalty
