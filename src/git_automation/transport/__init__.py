"""
Transport that lets dulwich fetch and push over SSH through the system
``ssh`` executable.

See :mod:`git_automation.transport.ssh_exe_stream` for the connection
semantics and :mod:`git_automation.transport.vendor` for the dulwich
binding.
"""

from .errors import (  # noqa: F401
    ConfigurationError,
    ProcessLaunchError,
    ProtocolViolation,
    RemoteProcessFailure,
    TransportError,
)
from .ssh_exe_stream import SshExeTransportStream  # noqa: F401
from .url import ConnectionTarget, split_host_path  # noqa: F401
from .vendor import (  # noqa: F401
    SshExeConnection,
    SshExeVendor,
    register_ssh_exe_transport,
    unregister_ssh_exe_transport,
)
