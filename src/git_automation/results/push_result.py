"""
Outcome of a push, copied from dulwich's ``SendPackResult``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


@dataclass(frozen=True)
class PushResult:
    """Per-ref outcome of pushing to one remote.

    Attributes
    ----------
    remote_url : str
        Location that was pushed to.
    ref_status : Dict[str, Optional[str]]
        For each ref the push tried to update, ``None`` on success or the
        reason the remote rejected it.
    agent : Optional[str]
        Agent string advertised by the remote.
    """

    remote_url: str
    ref_status: Dict[str, Optional[str]] = field(default_factory=dict)
    agent: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return not self.failed_refs

    @property
    def failed_refs(self) -> Dict[str, str]:
        return {ref: error for ref, error in self.ref_status.items() if error is not None}

    @classmethod
    def from_send_pack_result(cls, remote_url: str, result: Any) -> "PushResult":
        status = getattr(result, "ref_status", None) or {}
        return cls(
            remote_url=remote_url,
            ref_status={_text(ref): _text(error) for ref, error in status.items()},
            agent=_text(getattr(result, "agent", None)),
        )
