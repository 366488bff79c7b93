"""
Outcome of bringing a local branch up to date with another commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .commit_info import CommitInfo


class MergeStatus(Enum):
    UP_TO_DATE = "up_to_date"
    FAST_FORWARD = "fast_forward"
    NON_FAST_FORWARD = "non_fast_forward"
    CONFLICTS = "conflicts"


@dataclass(frozen=True)
class MergeResult:
    """Merge status plus the commit the branch ended up on, if any."""

    status: MergeStatus
    commit: Optional[CommitInfo] = None
