"""
Launching and owning the ssh child process.

:class:`ManagedProcess` describes the command line up front and only
spawns it when :meth:`ManagedProcess.start` is called. Once running, a
daemon thread drains the process's stderr into a bounded
:class:`ErrorCapture` and forwards every chunk to a diagnostic sink, so
authentication prompts and warnings show up while the transfer is
still in progress.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from typing import BinaryIO, Callable, List, Optional, Sequence

from .errors import ProcessLaunchError
from .url import ConnectionTarget


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


ERROR_CAPTURE_SIZE = 8 * 1024
STDERR_CHUNK_SIZE = 1024
# How long a failure report waits for the stderr listener to see EOF.
STDERR_DRAIN_TIMEOUT = 1.0


def _remote_command_line(target: ConnectionTarget, remote_command: str) -> str:
    # The remote shell sees the path single-quoted; embedded quotes become '\''.
    path = target.path.replace("'", "'\\''")
    return f"{remote_command} '{path}'"


def build_argv(target: ConnectionTarget, remote_command: str) -> List[str]:
    """Return the arguments passed to ssh, one list item per argument."""
    argv = [target.user_host, _remote_command_line(target, remote_command)]
    if target.port is not None:
        argv = ["-p", target.port] + argv
    return argv


def build_arguments(target: ConnectionTarget, remote_command: str) -> str:
    """Return the ssh argument string for running ``remote_command`` on ``target``.

    The result has the form ``[-p <port>] <user>@<host> "<command> '<path>'"``;
    the user part is dropped when the URL carries no user. It is only
    used for display; the process is started from :func:`build_argv`.
    """
    args = f"{target.user_host} \"{_remote_command_line(target, remote_command)}\""
    if target.port is not None:
        args = f"-p {target.port} {args}"
    return args


def _log_stderr(text: str) -> None:
    logger.info("ssh: %s", text.rstrip())


class ErrorCapture:
    """Bounded buffer holding the most recent bytes written to stderr.

    One thread appends while another reads, so both sides take the lock.
    """

    def __init__(self, capacity: int = ERROR_CAPTURE_SIZE) -> None:
        self.capacity = capacity
        self._buffer = bytearray()
        self._lock = threading.Lock()

    def append(self, chunk: bytes) -> None:
        with self._lock:
            self._buffer += chunk
            overflow = len(self._buffer) - self.capacity
            if overflow > 0:
                del self._buffer[:overflow]

    def text(self) -> str:
        with self._lock:
            data = bytes(self._buffer)
        return data.decode("utf-8", errors="replace")

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


class ManagedProcess:
    """An ssh child process with all three standard streams redirected."""

    def __init__(
        self,
        executable: str,
        arguments: Sequence[str],
        on_stderr: Optional[Callable[[str], None]] = None,
        capture: Optional[ErrorCapture] = None,
    ) -> None:
        self.executable = executable
        self.arguments = list(arguments)
        self.error_capture = capture if capture is not None else ErrorCapture()
        self._on_stderr = on_stderr or _log_stderr
        self._popen: Optional[subprocess.Popen] = None
        self._listener: Optional[threading.Thread] = None
        self._released = False

    @property
    def argv(self) -> List[str]:
        return [self.executable] + self.arguments

    @property
    def started(self) -> bool:
        return self._popen is not None

    @property
    def has_exited(self) -> bool:
        return self._popen is not None and self._popen.poll() is not None

    @property
    def exit_code(self) -> Optional[int]:
        """Exit code of the process, ``None`` while it is running."""
        if self._popen is None:
            return None
        return self._popen.poll()

    @property
    def stdin(self) -> BinaryIO:
        if self._popen is None or self._popen.stdin is None:
            raise ValueError("ssh process has not been started")
        return self._popen.stdin

    @property
    def stdout(self) -> BinaryIO:
        if self._popen is None or self._popen.stdout is None:
            raise ValueError("ssh process has not been started")
        return self._popen.stdout

    def start(self) -> None:
        """Spawn the process and the stderr listener.

        Raises
        ------
        ProcessLaunchError
            If the executable cannot be found or started.
        """
        if self._popen is not None:
            raise RuntimeError("ssh process has already been started")
        argv = self.argv
        logger.debug("Starting ssh process: %s", " ".join(argv))
        try:
            # Unbuffered pipes: a read returns whatever a single read(2) yields.
            self._popen = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
            )
        except OSError as exc:
            logger.error("Failed to start %s: %s", self.executable, exc)
            raise ProcessLaunchError(f"Failed to start {self.executable!r}: {exc}") from exc

        self._listener = threading.Thread(
            target=self._pump_stderr,
            name=f"ssh-stderr-{self._popen.pid}",
            daemon=True,
        )
        self._listener.start()

    def _pump_stderr(self) -> None:
        stream = self._popen.stderr if self._popen is not None else None
        if stream is None:
            return
        try:
            for chunk in iter(lambda: stream.read(STDERR_CHUNK_SIZE), b""):
                if not chunk:
                    break
                self.error_capture.append(chunk)
                try:
                    self._on_stderr(chunk.decode("utf-8", errors="replace"))
                except Exception:
                    logger.exception("stderr sink failed")
        except (OSError, ValueError) as exc:
            # The pipe was closed underneath us during release.
            logger.debug("stderr listener stopped: %s", exc)

    def diagnostic_text(self) -> str:
        """Return captured stderr, giving the listener a moment to drain the pipe."""
        if self._listener is not None:
            self._listener.join(STDERR_DRAIN_TIMEOUT)
        return self.error_capture.text()

    def wait(self, timeout: Optional[float]) -> bool:
        """Wait up to ``timeout`` seconds for the process to exit; return whether it did."""
        if self._popen is None:
            return False
        try:
            self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        return True

    def close_input(self) -> None:
        if self._popen is not None and self._popen.stdin is not None:
            try:
                self._popen.stdin.close()
            except BrokenPipeError:
                pass

    def kill(self) -> None:
        if self._popen is not None:
            logger.debug("Killing ssh process %s", self._popen.pid)
            self._popen.kill()

    def release(self) -> None:
        """Reap the process and close its pipes. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        if self._popen is None:
            return
        self._popen.wait()
        if self._listener is not None:
            self._listener.join(STDERR_DRAIN_TIMEOUT)
        for pipe in (self._popen.stdin, self._popen.stdout, self._popen.stderr):
            if pipe is None:
                continue
            try:
                pipe.close()
            except BrokenPipeError:
                pass
