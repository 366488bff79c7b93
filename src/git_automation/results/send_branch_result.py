"""
Aggregate of the merges and pushes performed while sending a branch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union

from .merge_result import MergeResult
from .push_result import PushResult


@dataclass
class SendBranchResult:
    merge_results: List[MergeResult] = field(default_factory=list)
    push_results: List[PushResult] = field(default_factory=list)

    @property
    def last_merge_result(self) -> Optional[MergeResult]:
        return self.merge_results[-1] if self.merge_results else None

    @property
    def last_push_result(self) -> Optional[PushResult]:
        return self.push_results[-1] if self.push_results else None

    def __iter__(self) -> Iterator[Union[MergeResult, PushResult]]:
        """Yield merge and push results interleaved by position."""
        for idx in range(max(len(self.merge_results), len(self.push_results))):
            if idx < len(self.merge_results):
                yield self.merge_results[idx]
            if idx < len(self.push_results):
                yield self.push_results[idx]
