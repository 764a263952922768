# classgroups/domain/partition.py
"""
Group size partitioning.

Pure functions that decide how many groups a class is split into and how
large each group is. Every other grouping objective adjusts this baseline.
"""
from typing import List, Sequence
import math

from classgroups.config.settings import settings


def clamp_group_size(preferred_size: int) -> int:
    """Clamp a caller-supplied group size into the supported range."""
    return min(max(int(preferred_size), settings.GROUP_SIZE_MIN), settings.GROUP_SIZE_MAX)


def target_group_sizes(student_count: int, preferred_size: int) -> List[int]:
    """
    Sizes of the groups needed for student_count students, as evenly as possible.
    The first 'extra' groups get one more member.

    Example:
    >>> target_group_sizes(10, 4)
    [4, 3, 3]
    """
    if student_count <= 0:
        return []

    size = max(1, preferred_size)
    num_groups = max(1, math.ceil(student_count / size))
    base_size = student_count // num_groups
    extra = student_count % num_groups

    return [base_size + (1 if i < extra else 0) for i in range(num_groups)]


def partition_into_groups(member_ids: Sequence[str], target_size: int) -> List[List[str]]:
    """
    Partition members into groups as evenly as possible, keeping input order.
    """
    groups = []
    idx = 0
    for size in target_group_sizes(len(member_ids), target_size):
        groups.append(list(member_ids[idx: idx + size]))
        idx += size

    return groups
