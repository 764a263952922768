# tests/conftest.py
import pytest
from faker import Faker

from classgroups.domain.models import Gender, StudentRecord

FAKE = Faker()
Faker.seed(1234)


@pytest.fixture
def make_student():
    """
    Factory for StudentRecord with a fake name.
    Ids are short and readable ("s1", "s2", ...) unless given.
    """
    counter = {"n": 0}

    def _make(id=None, gender=Gender.PREFER_NOT_TO_SAY, needs_help=False,
              is_support_partner=False, separation_ids=()):
        counter["n"] += 1
        return StudentRecord(
            id=id or f"s{counter['n']}",
            name=FAKE.name(),
            gender=gender,
            needs_help=needs_help,
            is_support_partner=is_support_partner,
            separation_ids=frozenset(separation_ids),
        )

    return _make


@pytest.fixture
def make_class(make_student):
    def _make(n):
        return [make_student() for _ in range(n)]

    return _make
