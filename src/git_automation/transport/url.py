"""
Decomposition of connection URLs.

``ssh://[user@]host[:port]/path`` is split into the pieces needed to
build an ssh command line. IPv6 literals and credentials other than the
user name are left to the ssh client's own configuration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlsplit

from .errors import ConfigurationError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# Ports that are not worth passing to ssh because they are what it would
# use anyway.
DEFAULT_PORTS = {
    "ssh": 22,
    "git+ssh": 22,
    "ssh+git": 22,
    "ssh+exe": 22,
}


@dataclass(frozen=True)
class ConnectionTarget:
    """A decomposed remote address.

    Attributes
    ----------
    host : str
        Host name as it appears in the URL (lower-cased).
    user : str
        User name, empty when the URL carries none.
    path : str
        Repository path without the URL's leading ``/``.
    port : Optional[str]
        Explicit port, ``None`` when absent or equal to the scheme default.
    """

    host: str
    user: str
    path: str
    port: Optional[str] = None

    @property
    def user_host(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host


def split_host_path(url: str) -> ConnectionTarget:
    """Split ``url`` into a :class:`ConnectionTarget`.

    Raises
    ------
    ConfigurationError
        If the URL is not of the form ``scheme://[user@]host[:port]/path``.
    """
    try:
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError as exc:
        logger.error("Malformed connection URL %r: %s", url, exc)
        raise ConfigurationError(f"Malformed connection URL {url!r}: {exc}") from exc

    if not parsed.scheme or not parsed.hostname:
        logger.error("Connection URL %r has no scheme or host", url)
        raise ConfigurationError(
            f"Malformed connection URL {url!r}: expected scheme://[user@]host[:port]/path"
        )

    scheme = parsed.scheme.lower()
    if port is None or DEFAULT_PORTS.get(scheme) == port:
        port_text = None
    else:
        port_text = str(port)

    path = unquote(parsed.path)
    if path.startswith("/"):
        path = path[1:]

    return ConnectionTarget(
        host=parsed.hostname,
        user=unquote(parsed.username or ""),
        path=path,
        port=port_text,
    )
