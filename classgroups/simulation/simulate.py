# classgroups/simulation/simulate.py
"""
Simulation script: builds a fake class roster, adds a few separations and
generates groups with every rule enabled.

Run from project root:
    python -m classgroups.simulation.simulate
"""

import logging
import random
import uuid
from faker import Faker

from classgroups.config.settings import settings
from classgroups.domain.models import Gender
from classgroups.services.group_service import GroupGeneratorService
from classgroups.services.roster_service import RosterStudent

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

fake = Faker()
NUM_STUDENTS = 27
GROUP_SIZE = 4
NUM_SEPARATIONS = 6
SEED = 7


def build_roster(rng: random.Random):
    genders = [Gender.MALE, Gender.FEMALE, Gender.NON_BINARY, Gender.PREFER_NOT_TO_SAY]
    roster = []
    for i in range(NUM_STUDENTS):
        roster.append(RosterStudent(
            uuid=str(uuid.UUID(int=rng.getrandbits(128))),
            legacy_id=f"legacy-{i}",
            name=fake.name(),
            gender=rng.choices(genders, weights=[45, 45, 5, 5])[0].value,
            is_participating_well=rng.random() < 0.4,
            needs_help=rng.random() < 0.2,
            missing_homework=rng.random() < 0.2,
            sort_order=i,
        ))

    # mix canonical and legacy tokens, as older rosters do
    for _ in range(NUM_SEPARATIONS):
        a, b = rng.sample(roster, 2)
        token = b.uuid if rng.random() < 0.5 else b.legacy_id
        a.separation_list = ",".join(filter(None, [a.separation_list, token]))
    return roster


def run_simulation():
    Faker.seed(SEED)
    rng = random.Random(SEED)
    roster = build_roster(rng)

    service = GroupGeneratorService()
    generated = service.generate(
        roster,
        group_size=GROUP_SIZE,
        balance_gender=True,
        balance_ability=True,
        pair_support_partners=True,
        respect_separations=True,
        seed=SEED,
    )

    for index, group in enumerate(generated.groups, start=1):
        print(f"Group {index}:")
        for s in group:
            flags = []
            if s.needs_help:
                flags.append("needs help")
            if s.is_support_partner_candidate:
                flags.append("partner")
            print(f"  - {s.name} ({s.gender_enum.value}) {', '.join(flags)}")

    print(generated.notice.text)
    print(f"Strategy: {generated.result.strategy.value}, attempts: {generated.result.attempts}")


if __name__ == "__main__":
    run_simulation()
