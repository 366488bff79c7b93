"""
Version control integration.

:class:`GitClient` wraps a local repository opened with dulwich and runs
its fetches and pushes over the ssh executable transport.
"""

from .git_client import GitClient, GitError, ls_remote  # noqa: F401
