# classgroups/domain/grouping.py

from typing import Optional
from dataclasses import dataclass

from classgroups.config.settings import settings


@dataclass
class GroupingOptions:
    balance_gender: bool = False
    balance_ability: bool = False
    pair_support_partners: bool = False
    respect_separations: bool = False
    max_attempts: Optional[int] = None
    seed: int = 0

    def __post_init__(self):
        # naive size-only grouping skips the expensive retries
        if self.max_attempts is None:
            if self.uses_advanced_rules:
                self.max_attempts = settings.MAX_ATTEMPTS_ADVANCED
            else:
                self.max_attempts = settings.MAX_ATTEMPTS_BASIC
        self.max_attempts = max(1, int(self.max_attempts))

    @property
    def uses_advanced_rules(self) -> bool:
        return (
            self.balance_gender
            or self.balance_ability
            or self.pair_support_partners
            or self.respect_separations
        )

    def attempt_seed(self, attempt: int) -> int:
        return self.seed * 1_000_003 + attempt
