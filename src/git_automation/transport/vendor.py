"""
Binding of :class:`SshExeTransportStream` into dulwich.

dulwich talks to SSH remotes through an :class:`~dulwich.client.SSHVendor`
whose ``run_command`` returns an object with ``read``, ``write``,
``close`` and ``can_read``. :class:`SshExeVendor` is that vendor and
:class:`SshExeConnection` adapts the stream to the connection contract.
"""

from __future__ import annotations

import io
import logging
import shlex
from typing import Callable, Optional, Union
from urllib.parse import quote, urlunsplit

import dulwich.client
from dulwich.client import SSHVendor

from .errors import ConfigurationError
from .ssh_exe_stream import READ_CHUNK_SIZE, SshExeTransportStream


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# dulwich closes the connection right after the last protocol read, a
# moment before ssh exits on its own.
DEFAULT_EXIT_GRACE_PERIOD = 5.0


class SshExeConnection:
    """The connection object dulwich's protocol layer reads from and writes to."""

    def __init__(self, stream: SshExeTransportStream) -> None:
        self.stream = stream

    def read(self, n: int = -1) -> bytes:
        """Read ``n`` bytes, fewer only at end of stream. ``n < 0`` reads to the end."""
        buffer = io.BytesIO()
        remaining = n
        while remaining != 0:
            want = READ_CHUNK_SIZE if remaining < 0 else remaining
            count = self.stream.read(buffer, want)
            if count == 0:
                break
            if remaining > 0:
                remaining -= count
        return buffer.getvalue()

    def write(self, data: bytes) -> int:
        self.stream.write(io.BytesIO(data), len(data))
        return len(data)

    def can_read(self) -> bool:
        return self.stream.has_pending_output()

    def close(self) -> None:
        self.stream.close()


def build_url(host: str, path: str, username: Optional[str] = None, port: Optional[int] = None) -> str:
    """Reassemble an ``ssh://`` URL from the pieces dulwich hands to a vendor.

    The URL's own ``/`` separator is always added, so an absolute ``path``
    ends up as ``ssh://host//srv/repo.git`` and survives decomposition.
    """
    netloc = host
    if port is not None:
        netloc = f"{netloc}:{port}"
    if username:
        netloc = f"{quote(username, safe='')}@{netloc}"
    return urlunsplit(("ssh", netloc, quote("/" + path), "", ""))


class SshExeVendor(SSHVendor):
    """SSH vendor that runs the remote git command through the ssh executable."""

    def __init__(
        self,
        ssh_executable: str = "ssh",
        on_stderr: Optional[Callable[[str], None]] = None,
        exit_grace_period: Optional[float] = DEFAULT_EXIT_GRACE_PERIOD,
    ) -> None:
        self.ssh_executable = ssh_executable
        self.on_stderr = on_stderr
        self.exit_grace_period = exit_grace_period

    def run_command(
        self,
        host: str,
        command: Union[str, bytes],
        username: Optional[str] = None,
        port: Optional[int] = None,
        password: Optional[str] = None,
        key_filename: Optional[str] = None,
        ssh_command: Optional[str] = None,
        protocol_version: Optional[int] = None,
        **kwargs,
    ) -> SshExeConnection:
        if isinstance(command, bytes):
            command = command.decode("utf-8")
        if password is not None or key_filename is not None:
            logger.debug("Ignoring password/key file; configure them for %s instead", self.ssh_executable)
        if ssh_command is not None or protocol_version is not None:
            logger.debug(
                "Ignoring ssh_command=%r protocol_version=%r", ssh_command, protocol_version
            )

        try:
            remote_command, path = shlex.split(command)
        except ValueError as exc:
            raise ConfigurationError(f"Unexpected remote command line: {command!r}") from exc

        stream = SshExeTransportStream(
            build_url(host, path, username=username, port=port),
            remote_command,
            ssh_executable=self.ssh_executable,
            on_stderr=self.on_stderr,
            exit_grace_period=self.exit_grace_period,
        )
        return SshExeConnection(stream)


def register_ssh_exe_transport(
    ssh_executable: str = "ssh",
    on_stderr: Optional[Callable[[str], None]] = None,
    exit_grace_period: Optional[float] = DEFAULT_EXIT_GRACE_PERIOD,
) -> Callable[[], SSHVendor]:
    """Make :class:`SshExeVendor` dulwich's default vendor for SSH locations.

    Applies to every ``ssh://``, ``git+ssh://`` and ``host:path`` location
    opened afterwards. Returns the factory that was installed before, for
    :func:`unregister_ssh_exe_transport`.
    """
    previous = dulwich.client.get_ssh_vendor

    def factory() -> SSHVendor:
        return SshExeVendor(ssh_executable, on_stderr=on_stderr, exit_grace_period=exit_grace_period)

    dulwich.client.get_ssh_vendor = factory
    logger.debug("Registered ssh executable transport using %s", ssh_executable)
    return previous


def unregister_ssh_exe_transport(previous: Callable[[], SSHVendor]) -> None:
    dulwich.client.get_ssh_vendor = previous
