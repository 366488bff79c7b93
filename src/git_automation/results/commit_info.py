"""
Read-only view of a commit.

:class:`CommitInfo` copies the fields of a dulwich
:class:`~dulwich.objects.Commit` into plain Python values so callers do
not have to deal with bytes, raw timestamps or timezone offsets.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Tuple

from dulwich.objects import Commit


_IDENTITY_RE = re.compile(r"^(?P<name>.*?)\s*<(?P<email>[^>]*)>\s*$")


def _decode(value: Optional[bytes], encoding: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return value.decode(encoding, errors="replace")


@dataclass(frozen=True)
class Signature:
    """Author or committer of a commit."""

    name: str
    email: str
    when: datetime

    @classmethod
    def from_identity(cls, identity: bytes, timestamp: int, tz_offset: int, encoding: str = "utf-8") -> "Signature":
        """Parse ``b"Name <email>"`` with a unix timestamp and a UTC offset in seconds."""
        text = _decode(identity, encoding)
        match = _IDENTITY_RE.match(text)
        if match:
            name, email = match.group("name"), match.group("email")
        else:
            name, email = text.strip(), ""
        when = datetime.fromtimestamp(timestamp, timezone(timedelta(seconds=tz_offset)))
        return cls(name=name, email=email, when=when)

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"


@dataclass(frozen=True)
class CommitInfo:
    """Snapshot of a commit's metadata.

    Attributes
    ----------
    id : str
        Hex SHA-1 of the commit.
    author, committer : Signature
    encoding : Optional[str]
        Encoding declared in the commit header, if any.
    message : str
        Full commit message.
    message_short : str
        First line of the message.
    parents : Tuple[str, ...]
        Hex SHA-1s of the parent commits, in order.
    notes : Tuple[str, ...]
        Notes attached to the commit, one per notes ref that has one.
    """

    id: str
    author: Signature
    committer: Signature
    encoding: Optional[str]
    message: str
    message_short: str
    parents: Tuple[str, ...]
    notes: Tuple[str, ...] = ()

    @property
    def sha(self) -> str:
        return self.id

    @classmethod
    def from_commit(cls, commit: Commit, notes: Iterable[bytes] = ()) -> "CommitInfo":
        declared = _decode(commit.encoding, "ascii") if commit.encoding else None
        encoding = declared or "utf-8"
        try:
            "".encode(encoding)
        except LookupError:
            encoding = "utf-8"

        message = _decode(commit.message, encoding)
        lines = message.splitlines()
        return cls(
            id=_decode(commit.id, "ascii"),
            author=Signature.from_identity(
                commit.author, commit.author_time, commit.author_timezone, encoding
            ),
            committer=Signature.from_identity(
                commit.committer, commit.commit_time, commit.commit_timezone, encoding
            ),
            encoding=declared,
            message=message,
            message_short=lines[0] if lines else "",
            parents=tuple(_decode(parent, "ascii") for parent in commit.parents),
            notes=tuple(_decode(note, "utf-8") for note in notes),
        )
