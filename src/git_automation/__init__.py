"""
Top-level package for git_automation.

Automation helpers over dulwich: result types for commits, merges and
pushes, and a transport that runs the system ``ssh`` binary for SSH
remotes. The CLI entry point lives in ``git_automation.cli``.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
