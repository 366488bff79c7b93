"""
Exceptions raised by the ssh executable transport.

None of these derive from :class:`OSError`. dulwich converts ``OSError``
raised inside a protocol read into its own protocol errors, which would
hide the exit code and stderr text carried here.
"""

from __future__ import annotations


class TransportError(Exception):
    """Base class for failures of the ssh executable transport."""

    pass


class ConfigurationError(TransportError):
    """Raised when a connection URL cannot be parsed."""

    pass


class ProcessLaunchError(TransportError):
    """Raised when the ssh executable cannot be started."""

    pass


class RemoteProcessFailure(TransportError):
    """Raised when the ssh process exited while the transport still needed it.

    Carries the exit code and the captured tail of the process's stderr.
    """

    def __init__(self, exit_code: int, stderr_text: str = "") -> None:
        self.exit_code = exit_code
        self.stderr_text = stderr_text
        super().__init__(
            f"ssh process terminated unexpectedly with exit code {exit_code}: {stderr_text}"
        )


class ProtocolViolation(TransportError):
    """Raised when the stream is closed while the ssh process is still running."""

    pass
