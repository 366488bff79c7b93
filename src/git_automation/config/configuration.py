"""
String lookups in git configuration files.

``get_string(config, "remote.origin.url")`` and
``get_string(config, "remote", "origin", "url")`` read the same
variable from any dulwich :class:`~dulwich.config.Config`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from dulwich.config import Config


class ConfigurationLevel(Enum):
    LOCAL = "local"
    GLOBAL = "global"
    SYSTEM = "system"


@dataclass(frozen=True)
class ConfigurationEntry:
    key: str
    value: str
    level: Optional[ConfigurationLevel] = None


def split_key(key_parts: Sequence[str]) -> Tuple[Tuple[bytes, ...], bytes]:
    """Turn a dotted key, or its parts, into a dulwich ``(section, name)`` pair.

    The first part is the section and the last the variable name;
    whatever lies between is the subsection and may itself contain dots.
    """
    if len(key_parts) == 1:
        key = key_parts[0]
        section, dot, rest = key.partition(".")
        subsection, _, name = rest.rpartition(".")
        if not dot or not section or not name:
            raise ValueError(f"Configuration key must look like section[.subsection].name: {key!r}")
        parts = [section, subsection, name] if subsection else [section, name]
    else:
        parts = list(key_parts)
    if len(parts) not in (2, 3) or not all(parts):
        raise ValueError(f"Configuration key needs two or three parts: {key_parts!r}")
    section = tuple(part.encode("utf-8") for part in parts[:-1])
    return section, parts[-1].encode("utf-8")


def get_string(
    config: Config,
    *key_parts: str,
    level: Optional[ConfigurationLevel] = None,
) -> Optional[ConfigurationEntry]:
    """Return the entry for the given key, or ``None`` if it is not set."""
    section, name = split_key(key_parts)
    try:
        value = config.get(section, name)
    except KeyError:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    key = ".".join(part.decode("utf-8") for part in section + (name,))
    return ConfigurationEntry(key=key, value=value, level=level)
