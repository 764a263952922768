# tests/test_grouping_engine.py
import random

import pytest

from classgroups.domain import grouping_engine
from classgroups.domain.constraints import build_separation_pairs, count_separation_conflicts
from classgroups.domain.grouping import GroupingOptions
from classgroups.domain.grouping_engine import Candidate, candidate_rank, generate_groups, select_best
from classgroups.domain.models import Gender, GroupingStrategy
from classgroups.domain.partition import partition_into_groups, target_group_sizes

ALL_RULES = dict(
    balance_gender=True,
    balance_ability=True,
    pair_support_partners=True,
    respect_separations=True,
)


def _ids(students):
    return sorted(s.id for s in students)


def _flat(groups):
    return sorted(sid for g in groups for sid in g)


def _random_class(make_student, rng, n):
    genders = list(Gender)
    students = []
    for i in range(n):
        needs_help = rng.random() < 0.25
        students.append(make_student(
            id=f"s{i}",
            gender=rng.choice(genders),
            needs_help=needs_help,
            is_support_partner=not needs_help and rng.random() < 0.4,
        ))
    for _ in range(n // 3):
        a, b = rng.sample(students, 2)
        a.separation_ids = a.separation_ids | {b.id}
    return students

# -------------------------------
# Options
# -------------------------------

def test_attempt_budget_defaults():
    assert GroupingOptions().max_attempts == 1
    assert GroupingOptions(balance_gender=True).max_attempts == 32
    assert GroupingOptions(respect_separations=True, max_attempts=8).max_attempts == 8
    assert GroupingOptions(max_attempts=0).max_attempts == 1

# -------------------------------
# Scenarios
# -------------------------------

def test_trivial_two_groups_of_four(make_class):
    result = generate_groups(make_class(8), 4, GroupingOptions())
    assert result.group_sizes == [4, 4]
    assert result.strategy == GroupingStrategy.STRICT
    assert result.separation_conflicts == 0
    assert result.unassigned_count == 0

def test_empty_input():
    result = generate_groups([], 4, GroupingOptions(**ALL_RULES))
    assert result.groups == []
    assert result.unassigned_count == 0

def test_complete_separation_graph_forces_placement(make_student):
    ids = ["a", "b", "c", "d"]
    students = [make_student(id=i, separation_ids=set(ids) - {i}) for i in ids]
    options = GroupingOptions(respect_separations=True, max_attempts=32)

    result = generate_groups(students, 2, options)

    assert result.strategy == GroupingStrategy.FORCED_PLACEMENT
    assert result.separation_conflicts >= 1
    assert result.unassigned_count == 0
    assert _flat(result.groups) == ids
    assert result.group_sizes == [2, 2]
    assert result.attempts == 32

def test_separated_pair_is_kept_apart(make_student):
    a = make_student(id="a", separation_ids={"b"})
    b = make_student(id="b", separation_ids={"a"})
    students = [a, b] + [make_student() for _ in range(8)]
    options = GroupingOptions(respect_separations=True, max_attempts=8)

    result = generate_groups(students, 4, options)

    assert result.separation_conflicts == 0
    assert result.strategy != GroupingStrategy.FAILED
    for group in result.groups:
        assert not {"a", "b"} <= set(group)

def test_disabled_separations_report_no_conflicts(make_student):
    a = make_student(id="a", separation_ids={"b"})
    b = make_student(id="b")
    result = generate_groups([a, b], 4, GroupingOptions())
    assert result.groups == [["a", "b"]] or result.groups == [["b", "a"]]
    assert result.separation_conflicts == 0
    assert result.strategy == GroupingStrategy.STRICT

def test_support_partners_cover_every_helped_group(make_student):
    students = (
        [make_student(needs_help=True) for _ in range(3)]
        + [make_student(is_support_partner=True) for _ in range(3)]
        + [make_student() for _ in range(6)]
    )
    options = GroupingOptions(pair_support_partners=True, balance_ability=True)
    by_id = {s.id: s for s in students}

    result = generate_groups(students, 4, options)

    assert len(result.groups) == 3
    for group in result.groups:
        members = [by_id[sid] for sid in group]
        if any(m.needs_help for m in members):
            assert any(m.is_support_partner for m in members)

def test_group_size_is_clamped(make_class):
    students = make_class(5)
    assert generate_groups(students, 0).group_sizes == [2, 2, 1]
    assert generate_groups(make_class(25), 40).group_sizes == [9, 8, 8]

def test_duplicate_ids_are_dropped(make_student):
    students = [make_student(id="a"), make_student(id="a"), make_student(id="b")]
    result = generate_groups(students, 2)
    assert _flat(result.groups) == ["a", "b"]

# -------------------------------
# Properties
# -------------------------------

@pytest.mark.parametrize("seed", range(12))
def test_coverage_balance_and_reported_conflicts(make_student, seed):
    rng = random.Random(seed)
    n = rng.randint(1, 35)
    size = rng.randint(2, 10)
    students = _random_class(make_student, rng, n)
    options = GroupingOptions(seed=seed, **ALL_RULES)

    result = generate_groups(students, size, options)

    assert result.strategy != GroupingStrategy.FAILED
    assert _flat(result.groups) == _ids(students)
    assert max(result.group_sizes) - min(result.group_sizes) <= 1
    pairs = build_separation_pairs(students)
    assert result.separation_conflicts == count_separation_conflicts(result.groups, pairs)

def test_same_input_same_grouping(make_class):
    students = make_class(17)
    first = generate_groups(students, 4, GroupingOptions())
    second = generate_groups(students, 4, GroupingOptions())
    assert first.groups == second.groups

def test_seeded_grouping_is_repeatable(make_class):
    students = make_class(20)
    a = generate_groups(students, 4, GroupingOptions(seed=1))
    b = generate_groups(students, 4, GroupingOptions(seed=1))
    assert a.groups == b.groups

# -------------------------------
# Candidate ranking and strategy labels
# -------------------------------

def test_rank_prefers_fewer_conflicts_then_balance_then_order():
    early = Candidate(index=0, groups=[], separation_conflicts=1, gender_penalty=0.5)
    balanced = Candidate(index=2, groups=[], separation_conflicts=1, gender_penalty=0.1)
    clean = Candidate(index=5, groups=[], separation_conflicts=0, gender_penalty=3.0)
    assert select_best([early, balanced]) is balanced
    assert select_best([early, balanced, clean]) is clean
    twin = Candidate(index=3, groups=[], separation_conflicts=1, gender_penalty=0.1)
    assert select_best([twin, balanced]) is balanced
    assert candidate_rank(Candidate(index=0, groups=[], unassigned=["x"])) > candidate_rank(early)

def test_select_best_of_nothing():
    assert select_best([]) is None


def _script(monkeypatch, candidates):
    def fake_build(index, *args, **kwargs):
        return candidates[index]

    monkeypatch.setattr(grouping_engine, "build_candidate", fake_build)


def test_retry_with_zero_conflicts_is_relaxed(monkeypatch, make_class):
    _script(monkeypatch, [
        Candidate(index=0, groups=[["s1", "s2"]], separation_conflicts=2),
        Candidate(index=1, groups=[["s1", "s2"]], separation_conflicts=0),
    ])
    result = generate_groups(make_class(2), 2, GroupingOptions(respect_separations=True, max_attempts=2))
    assert result.strategy == GroupingStrategy.RELAXED_CONSTRAINTS
    assert result.separation_conflicts == 0

def test_retry_that_only_improves_is_relaxed_with_conflicts(monkeypatch, make_class):
    _script(monkeypatch, [
        Candidate(index=0, groups=[["s1"]], separation_conflicts=3),
        Candidate(index=1, groups=[["s1"]], separation_conflicts=1),
        Candidate(index=2, groups=[["s1"]], separation_conflicts=2),
    ])
    result = generate_groups(make_class(1), 2, GroupingOptions(respect_separations=True, max_attempts=3))
    assert result.strategy == GroupingStrategy.RELAXED_CONSTRAINTS
    assert result.separation_conflicts == 1
    assert result.attempts == 3

def test_no_improvement_is_forced(monkeypatch, make_class):
    _script(monkeypatch, [
        Candidate(index=0, groups=[["s1"]], separation_conflicts=1),
        Candidate(index=1, groups=[["s1"]], separation_conflicts=1, gender_penalty=0.0),
    ])
    result = generate_groups(make_class(1), 2, GroupingOptions(respect_separations=True, max_attempts=2))
    assert result.strategy == GroupingStrategy.FORCED_PLACEMENT

def test_unplaced_students_fail(monkeypatch, make_class):
    _script(monkeypatch, [
        Candidate(index=0, groups=[["s1"]], unassigned=["s2"]),
    ])
    result = generate_groups(make_class(2), 2, GroupingOptions(respect_separations=True, max_attempts=1))
    assert result.strategy == GroupingStrategy.FAILED
    assert result.unassigned_count == 1


def test_clean_first_attempt_still_spends_budget_on_balance(monkeypatch, make_class):
    _script(monkeypatch, [
        Candidate(index=0, groups=[["s1"]], gender_penalty=2.0),
        Candidate(index=1, groups=[["s2"]], gender_penalty=0.5),
        Candidate(index=2, groups=[["s3"]], gender_penalty=1.0),
    ])
    result = generate_groups(make_class(1), 2, GroupingOptions(balance_gender=True, max_attempts=3))
    assert result.strategy == GroupingStrategy.STRICT
    assert result.groups == [["s2"]]
    assert result.attempts == 3

def test_clean_grouping_reports_full_budget(make_class):
    result = generate_groups(make_class(12), 4, GroupingOptions(balance_gender=True))
    assert result.strategy == GroupingStrategy.STRICT
    assert result.attempts == 32

def test_size_only_grouping_slices_a_seeded_shuffle(make_class):
    students = make_class(10)
    options = GroupingOptions(seed=3)
    ids = [s.id for s in students]
    random.Random(options.attempt_seed(0)).shuffle(ids)

    result = generate_groups(students, 4, options)

    assert result.groups == partition_into_groups(ids, 4)

# -------------------------------
# Balance rules
# -------------------------------

def _counts(result, by_id, predicate):
    return [sum(1 for sid in g if predicate(by_id[sid])) for g in result.groups]


def _spread(counts):
    return max(counts) - min(counts)


def _flagged_class(make_student, rng, n, genders=(Gender.FEMALE, Gender.MALE), helped=None, partners=0):
    """n students; the first `helped` need help, the next `partners` are support partners."""
    if helped is None:
        helped = sum(1 for _ in range(n) if rng.random() < 0.3)
    students = []
    for i in range(n):
        students.append(make_student(
            id=f"s{i}",
            gender=rng.choice(genders),
            needs_help=i < helped,
            is_support_partner=helped <= i < helped + partners,
        ))
    rng.shuffle(students)
    return students


@pytest.mark.parametrize("seed", range(20))
def test_gender_spread_is_at_most_one(make_student, seed):
    rng = random.Random(seed)
    students = _flagged_class(make_student, rng, rng.randint(12, 40))
    by_id = {s.id: s for s in students}
    options = GroupingOptions(balance_gender=True, max_attempts=4, seed=seed)

    result = generate_groups(students, rng.randint(2, 10), options)

    for gender in (Gender.FEMALE, Gender.MALE):
        assert _spread(_counts(result, by_id, lambda s: s.gender == gender)) <= 1

@pytest.mark.parametrize("seed", range(20))
def test_needs_help_spread_is_at_most_one(make_student, seed):
    rng = random.Random(seed)
    students = _flagged_class(make_student, rng, rng.randint(6, 40))
    by_id = {s.id: s for s in students}
    options = GroupingOptions(balance_ability=True, max_attempts=4, seed=seed)

    result = generate_groups(students, rng.randint(2, 10), options)

    assert _spread(_counts(result, by_id, lambda s: s.needs_help)) <= 1

@pytest.mark.parametrize("seed", range(20))
def test_gender_balance_does_not_cluster_needs_help(make_student, seed):
    rng = random.Random(seed)
    students = _flagged_class(make_student, rng, rng.randint(6, 40), genders=tuple(Gender))
    by_id = {s.id: s for s in students}
    options = GroupingOptions(balance_ability=True, balance_gender=True, max_attempts=4, seed=seed)

    result = generate_groups(students, rng.randint(2, 10), options)

    assert _spread(_counts(result, by_id, lambda s: s.needs_help)) <= 1

def test_needs_help_stays_spread_in_one_large_and_one_smaller_group(make_student):
    rng = random.Random(3)
    students = _flagged_class(make_student, rng, 19, helped=5)
    by_id = {s.id: s for s in students}
    options = GroupingOptions(balance_ability=True, balance_gender=True)

    result = generate_groups(students, 10, options)

    assert result.group_sizes == [10, 9]
    assert sorted(_counts(result, by_id, lambda s: s.needs_help)) == [2, 3]

@pytest.mark.parametrize("seed", range(20))
def test_every_helped_group_gets_a_partner(make_student, seed):
    rng = random.Random(seed)
    size = rng.randint(3, 6)
    n = rng.randint(2 * size + 1, 40)
    group_count = len(target_group_sizes(n, size))
    helped = rng.randint(group_count, group_count + (n - 2 * group_count) // 2)
    partners = rng.randint(group_count, n - helped)
    students = _flagged_class(make_student, rng, n, helped=helped, partners=partners)
    by_id = {s.id: s for s in students}
    options = GroupingOptions(pair_support_partners=True, max_attempts=4, seed=seed)

    result = generate_groups(students, size, options)

    assert len(result.groups) >= 3
    for group in result.groups:
        members = [by_id[sid] for sid in group]
        if any(m.needs_help for m in members):
            assert any(m.is_support_partner for m in members)

@pytest.mark.parametrize("seed", range(20))
def test_pairing_then_ability_hold_with_every_balance_rule(make_student, seed):
    rng = random.Random(seed)
    size = rng.randint(3, 6)
    n = rng.randint(2 * size + 1, 40)
    group_count = len(target_group_sizes(n, size))
    helped = rng.randint(group_count, group_count + (n - 2 * group_count) // 2)
    partners = rng.randint(group_count, n - helped)
    students = _flagged_class(make_student, rng, n, genders=tuple(Gender), helped=helped, partners=partners)
    by_id = {s.id: s for s in students}
    options = GroupingOptions(
        pair_support_partners=True, balance_ability=True, balance_gender=True, max_attempts=4, seed=seed,
    )

    result = generate_groups(students, size, options)

    assert _spread(_counts(result, by_id, lambda s: s.needs_help)) <= 1
    for group in result.groups:
        members = [by_id[sid] for sid in group]
        assert any(m.is_support_partner for m in members)

def test_pairing_outranks_gender(make_student):
    students = [
        make_student(id="h1", gender=Gender.MALE, needs_help=True),
        make_student(id="h2", gender=Gender.MALE, needs_help=True),
        make_student(id="p1", gender=Gender.MALE, is_support_partner=True),
        make_student(id="f1", gender=Gender.FEMALE),
        make_student(id="f2", gender=Gender.FEMALE),
        make_student(id="f3", gender=Gender.FEMALE),
    ]
    options = GroupingOptions(pair_support_partners=True, balance_gender=True)

    result = generate_groups(students, 3, options)

    assert sorted(sorted(g) for g in result.groups) == [["f1", "f2", "f3"], ["h1", "h2", "p1"]]
