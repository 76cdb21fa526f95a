#!/usr/bin/env python3
"""
Duplicate grouping over the index

Two files are duplicates iff they produced equal digests under the same
algorithm and both are currently indexed. Singleton buckets are never
reported.
"""

from dataclasses import dataclass
from typing import List, Optional

from .index import DuplicateIndex
from .models import DuplicateGroup


@dataclass(frozen=True)
class GroupSummary:
    group_count: int = 0
    duplicate_files: int = 0
    wasted_space: int = 0
    largest_waste: Optional[DuplicateGroup] = None


def find_duplicate_groups(index: DuplicateIndex) -> List[DuplicateGroup]:
    return index.all_groups()


def summarize_groups(groups: List[DuplicateGroup]) -> GroupSummary:
    if not groups:
        return GroupSummary()
    return GroupSummary(
        group_count=len(groups),
        duplicate_files=sum(g.count - 1 for g in groups),
        wasted_space=sum(g.wasted_space for g in groups),
        largest_waste=max(groups, key=lambda g: (g.wasted_space, g.count)),
    )
