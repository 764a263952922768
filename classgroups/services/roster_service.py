# classgroups/services/roster_service.py
"""
Roster projection.

Roster entries carry a stable UUID and, for older data, a legacy persistent id.
Separation lists are comma-separated tokens that may hold either form. The
grouping engine only ever sees stable ids, so tokens are resolved here.
"""
import logging
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, field_validator

from classgroups.domain.models import Gender, StudentRecord

logger = logging.getLogger(__name__)


class RosterStudent(BaseModel):
    uuid: str
    legacy_id: Optional[str] = None
    name: str
    gender: str = Gender.PREFER_NOT_TO_SAY.value
    is_participating_well: bool = False
    needs_help: bool = False
    missing_homework: bool = False
    separation_list: str = ""
    sort_order: int = 0

    @field_validator("uuid")
    @classmethod
    def uuid_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("roster student needs a stable id")
        return value

    @property
    def separation_tokens(self) -> List[str]:
        return [t.strip() for t in self.separation_list.split(",") if t.strip()]

    @property
    def gender_enum(self) -> Gender:
        try:
            return Gender(self.gender)
        except ValueError:
            return Gender.PREFER_NOT_TO_SAY

    @property
    def is_support_partner_candidate(self) -> bool:
        # doing well, or at least keeping up with homework
        return not self.needs_help and (self.is_participating_well or not self.missing_homework)


def resolve_separation_ids(
    student: RosterStudent,
    known_ids: Sequence[str],
    stable_by_legacy: Dict[str, str],
) -> List[str]:
    """
    Map separation tokens to stable ids, dropping unknown tokens, duplicates
    and self references. Order follows the original token order.
    """
    known = set(known_ids)
    resolved = []
    for token in student.separation_tokens:
        stable = token if token in known else stable_by_legacy.get(token)
        if stable is None:
            logger.debug("unknown separation token %r on %s", token, student.uuid)
            continue
        if stable == student.uuid or stable in resolved:
            continue
        resolved.append(stable)
    return resolved


def unique_roster(roster: Sequence[RosterStudent]) -> List[RosterStudent]:
    """Roster in sort order; for a repeated stable id the first entry wins."""
    seen = set()
    unique = []
    for s in sorted(roster, key=lambda s: s.sort_order):
        if s.uuid in seen:
            logger.warning("duplicate roster id %s ignored", s.uuid)
            continue
        seen.add(s.uuid)
        unique.append(s)
    return unique


def to_student_records(roster: Sequence[RosterStudent]) -> List[StudentRecord]:
    """Project roster entries, in sort order, into engine records."""
    ordered = unique_roster(roster)
    known_ids = [s.uuid for s in ordered]
    stable_by_legacy = {s.legacy_id: s.uuid for s in ordered if s.legacy_id}

    return [
        StudentRecord(
            id=s.uuid,
            name=s.name,
            gender=s.gender_enum,
            needs_help=s.needs_help,
            is_support_partner=s.is_support_partner_candidate,
            separation_ids=frozenset(resolve_separation_ids(s, known_ids, stable_by_legacy)),
        )
        for s in ordered
    ]


def separation_list_for(selected: Sequence[RosterStudent]) -> str:
    """Serialize a selection of students back to a separation list of stable ids."""
    return ",".join(sorted({s.uuid for s in selected}))
