"""
Read-only result types built from completed dulwich operations.
"""

from .commit_info import CommitInfo, Signature  # noqa: F401
from .merge_result import MergeResult, MergeStatus  # noqa: F401
from .push_result import PushResult  # noqa: F401
from .send_branch_result import SendBranchResult  # noqa: F401
