"""
A duplex byte stream backed by an ``ssh`` child process.

:class:`SshExeTransportStream` lets the version control engine fetch and
push over SSH by running the system ``ssh`` binary with
``git-upload-pack`` or ``git-receive-pack`` as the remote command. The
engine sees a connection: it writes request bytes, reads response bytes
and closes. Underneath, writes go to the process's stdin, reads come
from its stdout, and the process's lifecycle is translated into
connection errors:

* the process is spawned on the first read or write;
* every read and write first checks that the process is still running,
  and a process that exited underneath the transport is reported as a
  :class:`RemoteProcessFailure` with its exit code and stderr tail. Reads
  let a process that exited with code 0 be drained until end of stream;
* closing requires the process to have already exited with code 0. A
  process that is still running is killed and reported as a
  :class:`ProtocolViolation`.

Instances are meant to be driven by a single caller, one request after
another.
"""

from __future__ import annotations

import logging
import select
import weakref
from typing import BinaryIO, Callable, Optional

from .errors import ProtocolViolation, RemoteProcessFailure
from .process import ManagedProcess, build_arguments, build_argv
from .url import ConnectionTarget, split_host_path


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


READ_CHUNK_SIZE = 8 * 1024
# Largest chunk handed to the pipe in a single write.
MAX_CHUNK = 2**31 - 1


def _reclaim(process: ManagedProcess) -> None:
    """Finalizer for streams dropped without being closed."""
    if process.started and not process.has_exited:
        process.kill()
    process.release()


def _read_exactly(source: BinaryIO, size: int) -> bytes:
    data = source.read(size)
    if len(data) == size:
        return data
    parts = [data]
    received = len(data)
    while received < size:
        more = source.read(size - received)
        if not more:
            raise EOFError(f"source ran out after {received} of {size} bytes")
        parts.append(more)
        received += len(more)
    return b"".join(parts)


class SshExeTransportStream:
    """Connection to a remote git command through the ``ssh`` executable.

    Parameters
    ----------
    url : str
        Remote location, ``ssh://[user@]host[:port]/path``.
    remote_command : str
        Command run on the remote side, e.g. ``git-upload-pack``.
    ssh_executable : str
        Path or name of the ssh binary.
    on_stderr : callable, optional
        Receives each chunk of text the process writes to stderr.
    exit_grace_period : float, optional
        Seconds :meth:`close` waits for the process to exit on its own
        after closing its input. ``None`` checks immediately.

    Raises
    ------
    ConfigurationError
        If ``url`` cannot be decomposed. No process is created.
    """

    def __init__(
        self,
        url: str,
        remote_command: str,
        ssh_executable: str = "ssh",
        on_stderr: Optional[Callable[[str], None]] = None,
        exit_grace_period: Optional[float] = None,
    ) -> None:
        self.target: ConnectionTarget = split_host_path(url)
        self.remote_command = remote_command
        self.exit_grace_period = exit_grace_period
        self.arguments = build_arguments(self.target, remote_command)
        logger.debug("ssh transport for %s: %s %s", remote_command, ssh_executable, self.arguments)
        self._process: Optional[ManagedProcess] = ManagedProcess(
            ssh_executable, build_argv(self.target, remote_command), on_stderr=on_stderr
        )
        self._finalizer: Optional[weakref.finalize] = None

    @property
    def closed(self) -> bool:
        return self._process is None

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------
    def _assert_alive(self, allow_clean_exit: bool = False) -> ManagedProcess:
        """Start the process on first use and raise if it has exited.

        With ``allow_clean_exit`` a process that exited with code 0 passes,
        so output it wrote before exiting can still be read.
        """
        process = self._process
        if process is None:
            raise ValueError("I/O operation on closed ssh transport stream")
        if not process.started:
            process.start()
            self._finalizer = weakref.finalize(self, _reclaim, process)
        exit_code = process.exit_code
        if exit_code is not None and not (allow_clean_exit and exit_code == 0):
            self._raise_process_failure(process, exit_code)
        return process

    @staticmethod
    def _raise_process_failure(process: ManagedProcess, exit_code: int) -> None:
        stderr_text = process.diagnostic_text()
        logger.error("ssh process exited with code %s: %s", exit_code, stderr_text.strip())
        raise RemoteProcessFailure(exit_code, stderr_text)

    # ------------------------------------------------------------------
    # Byte transfer
    # ------------------------------------------------------------------
    def write(self, source: BinaryIO, length: int) -> None:
        """Copy exactly ``length`` bytes from ``source`` into the process's stdin.

        Data is handed over in chunks of at most :data:`MAX_CHUNK` bytes,
        each flushed before the next. Liveness is only checked once, up
        front; a process dying mid-write is reported by the next read.
        """
        process = self._assert_alive()
        remaining = length
        try:
            while remaining > 0:
                to_copy = min(remaining, MAX_CHUNK)
                self._write_chunk(process.stdin, _read_exactly(source, to_copy))
                remaining -= to_copy
        except Exception:
            logger.exception("Writing to the ssh process failed")
            raise

    @staticmethod
    def _write_chunk(stdin: BinaryIO, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = stdin.write(view)
            view = view[written:]
        stdin.flush()

    def read(self, destination: BinaryIO, length: int) -> int:
        """Read at most ``min(length, 8 KiB)`` bytes of process output into ``destination``.

        Returns the number of bytes transferred. A process that exited with
        code 0 may still have output waiting in the pipe, so it is drained
        first. A zero-byte read is only reported as end of stream when the
        process is still running; if it exited, the exit is raised instead.
        """
        process = self._assert_alive(allow_clean_exit=True)
        if length <= 0:
            return 0
        try:
            data = process.stdout.read(min(length, READ_CHUNK_SIZE)) or b""
            destination.write(data)
            destination.flush()
        except Exception:
            logger.exception("Reading from the ssh process failed")
            raise

        if not data:
            # EOF: make sure the process didn't just die on us.
            self._assert_alive()
        return len(data)

    def has_pending_output(self) -> bool:
        """Return True if a read would not block (pipes must support ``select``)."""
        process = self._assert_alive(allow_clean_exit=True)
        try:
            readable, _, _ = select.select([process.stdout], [], [], 0)
        except (OSError, ValueError):
            return False
        return bool(readable)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Release the process, raising if it did not finish cleanly.

        Raises
        ------
        ProtocolViolation
            If the process was still running; it is killed first.
        RemoteProcessFailure
            If the process exited with a non-zero code.
        """
        process = self._process
        if process is None:
            return
        try:
            if not process.started:
                return
            if self.exit_grace_period is not None and not process.has_exited:
                process.close_input()
                process.wait(self.exit_grace_period)

            if not process.has_exited:
                process.kill()
                logger.error("ssh transport stream closed before the ssh process finished")
                raise ProtocolViolation(
                    "Closing ssh transport stream before the ssh process has finished."
                )

            exit_code = process.exit_code
            if exit_code != 0:
                self._raise_process_failure(process, exit_code)
        finally:
            self._process = None
            if self._finalizer is not None:
                self._finalizer.detach()
                self._finalizer = None
            process.release()

    def __enter__(self) -> "SshExeTransportStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
