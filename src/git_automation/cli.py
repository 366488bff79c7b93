"""
Command line interface for git_automation.

This module defines the ``main`` click group used as the entry point of
the ``git-automation`` command. Every SSH remote is reached through the
system ``ssh`` executable; the ssh process's stderr is echoed to the
terminal as it arrives so authentication prompts and host key warnings
stay visible.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import click

from git_automation import __version__
from git_automation.config.configuration import ConfigurationLevel
from git_automation.config.loader import ConfigError, load_config
from git_automation.results import MergeResult, PushResult
from git_automation.transport.errors import TransportError
from git_automation.transport.vendor import SshExeVendor
from git_automation.vcs.git_client import GitClient, GitError, ls_remote

# Create a module-level logger. Attach a null handler and disable
# propagation to avoid logging errors when the root logger's stream is
# closed (such as during unit tests).
logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_INVALID_USAGE = 2
EXIT_NO_REPO = 3
EXIT_CONFIG_ERROR = 5
EXIT_VCS_FAILURE = 6
EXIT_TRANSPORT_FAILURE = 7


# ---------------------------------------------------------------------------
# Progress and status display utilities
# ---------------------------------------------------------------------------

class ProgressIndicator:
    """Simple progress indicator for user feedback."""

    def __init__(self, message: str):
        self.message = message
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.time()
        click.echo(f"→ {self.message}...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            elapsed = time.time() - (self.start_time or time.time())
            click.echo(f"  ✓ Done ({elapsed:.1f}s)")
        return False


def print_info(message: str, indent: int = 0):
    """Print an info message."""
    prefix = "  " * indent
    click.echo(f"{prefix}ℹ {message}", err=False)


def print_success(message: str, indent: int = 0):
    """Print a success message."""
    prefix = "  " * indent
    click.echo(f"{prefix}✓ {message}", err=False)


def print_warning(message: str, indent: int = 0):
    """Print a warning message."""
    prefix = "  " * indent
    click.echo(f"{prefix}⚠ {message}", err=False)


def print_error(message: str, indent: int = 0):
    """Print an error message."""
    prefix = "  " * indent
    click.echo(f"{prefix}✗ {message}", err=True)


def echo_ssh_stderr(text: str) -> None:
    """Forward text the ssh process wrote to stderr to our stderr."""
    click.echo(text, err=True, nl=False)


def print_push_result(push: PushResult) -> None:
    for ref, error in sorted(push.ref_status.items()):
        if error is None:
            print_success(f"{ref}", indent=1)
        else:
            print_error(f"{ref}: {error}", indent=1)


def print_merge_result(merge: MergeResult) -> None:
    status = merge.status.value.replace("_", " ")
    if merge.commit is not None:
        print_info(f"Merge: {status} at {merge.commit.sha[:12]} {merge.commit.message_short}", indent=1)
    else:
        print_warning(f"Merge: {status}", indent=1)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@contextmanager
def handle_errors() -> Iterator[None]:
    """Map library exceptions to exit codes."""
    try:
        yield
    except click.exceptions.Exit:
        raise
    except TransportError as exc:
        print_error(f"Transport error: {exc}")
        raise click.exceptions.Exit(EXIT_TRANSPORT_FAILURE)
    except GitError as exc:
        print_error(f"Git error: {exc}")
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)
    except Exception as exc:
        logging.exception("Unhandled error: %s", exc)
        print_error(f"Unexpected error: {exc}")
        raise click.exceptions.Exit(EXIT_GENERIC_ERROR)


def open_client(settings: Dict[str, Any]) -> GitClient:
    """Open the repository containing the configured directory."""
    start = settings["repo_dir"] or Path.cwd()
    repo_root = GitClient.find_repo_root(start)
    if repo_root is None:
        print_error(f"No Git repository found at or above {start}.")
        raise click.exceptions.Exit(EXIT_NO_REPO)
    config = settings["config"]
    logger.debug("Using repository at %s", repo_root)
    return GitClient(
        repo_root,
        ssh_executable=config["ssh_executable"],
        on_stderr=echo_ssh_stderr,
        exit_grace_period=config["exit_grace_period"],
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose (debug) output.")
@click.option("--ssh", "ssh_executable", default=None, help="ssh executable to run for SSH remotes.")
@click.option(
    "--repo",
    "repo_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Repository directory (defaults to the current directory).",
)
@click.version_option(version=__version__, prog_name="git-automation")
@click.pass_context
def main(ctx: click.Context, verbose: bool, ssh_executable: Optional[str], repo_dir: Optional[Path]) -> None:
    """Fetch and push Git repositories over the system ssh executable."""
    try:
        config = load_config()
    except ConfigError as exc:
        print_error(f"Configuration error: {exc}")
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)

    # force=True reconfigures handlers on repeated invocations (tests).
    logging.basicConfig(
        level=logging.DEBUG if verbose else config["log_level"].upper(),
        format="%(levelname)s: %(message)s",
        force=True,
    )
    if ssh_executable:
        config["ssh_executable"] = ssh_executable
    ctx.obj = {"config": config, "repo_dir": repo_dir}


@main.command("ls-remote")
@click.argument("url")
@click.pass_obj
def ls_remote_command(settings: Dict[str, Any], url: str) -> None:
    """List the refs advertised by URL."""
    config = settings["config"]
    vendor = SshExeVendor(
        config["ssh_executable"],
        on_stderr=echo_ssh_stderr,
        exit_grace_period=config["exit_grace_period"],
    )
    with handle_errors():
        refs = ls_remote(url, vendor)
    for name, sha in sorted(refs.items()):
        click.echo(f"{sha}\t{name}")


@main.command()
@click.argument("url")
@click.pass_obj
def fetch(settings: Dict[str, Any], url: str) -> None:
    """Fetch all objects from URL into the repository."""
    client = open_client(settings)
    try:
        with handle_errors():
            with ProgressIndicator(f"Fetching from {url}"):
                refs = client.fetch(url)
    finally:
        client.close()
    print_success(f"Fetched {len(refs)} ref{'s' if len(refs) != 1 else ''}")
    for name, sha in sorted(refs.items()):
        print_info(f"{sha[:12]} {name}", indent=1)


@main.command()
@click.argument("url")
@click.argument("branch")
@click.option("--remote-branch", default=None, help="Name of the branch on the remote.")
@click.option("--force", is_flag=True, help="Allow updates that drop remote commits.")
@click.pass_obj
def push(settings: Dict[str, Any], url: str, branch: str, remote_branch: Optional[str], force: bool) -> None:
    """Push BRANCH to URL."""
    client = open_client(settings)
    try:
        with handle_errors():
            with ProgressIndicator(f"Pushing {branch} to {url}"):
                result = client.push_branch(url, branch, remote_branch=remote_branch, force=force)
    finally:
        client.close()
    print_push_result(result)
    if not result.succeeded:
        print_error("Push was rejected.")
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)
    print_success(f"Pushed {branch}")


@main.command("send-branch")
@click.argument("url")
@click.argument("branch")
@click.pass_obj
def send_branch(settings: Dict[str, Any], url: str, branch: str) -> None:
    """Fast-forward BRANCH onto its counterpart at URL, then push it."""
    client = open_client(settings)
    try:
        with handle_errors():
            with ProgressIndicator(f"Sending {branch} to {url}"):
                result = client.send_branch(url, branch)
    finally:
        client.close()

    failed = False
    for item in result:
        if isinstance(item, MergeResult):
            print_merge_result(item)
        else:
            print_push_result(item)
            failed = failed or not item.succeeded
    if result.last_push_result is None or failed:
        print_error(f"{branch} was not sent.")
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)
    print_success(f"Sent {branch}")


@main.command("show-commit")
@click.argument("rev", default="HEAD")
@click.pass_obj
def show_commit(settings: Dict[str, Any], rev: str) -> None:
    """Show metadata and notes of the commit REV (default HEAD)."""
    client = open_client(settings)
    try:
        with handle_errors():
            info = client.get_commit(rev)
    finally:
        client.close()
    lines: List[str] = [
        f"commit {info.sha}",
        f"Author: {info.author}",
        f"Date:   {info.author.when.isoformat()}",
    ]
    if len(info.parents) > 1:
        lines.insert(1, "Merge: " + " ".join(parent[:7] for parent in info.parents))
    click.echo("\n".join(lines))
    click.echo("")
    for line in info.message.splitlines():
        click.echo(f"    {line}")
    for note in info.notes:
        click.echo("")
        click.echo("Notes:")
        for line in note.splitlines():
            click.echo(f"    {line}")


@main.command("config-get")
@click.argument("key")
@click.option(
    "--level",
    type=click.Choice([level.value for level in ConfigurationLevel]),
    default=None,
    help="Only read this configuration file.",
)
@click.pass_obj
def config_get(settings: Dict[str, Any], key: str, level: Optional[str]) -> None:
    """Print the value of the git configuration variable KEY."""
    client = open_client(settings)
    try:
        with handle_errors():
            try:
                entry = client.get_config_string(key, ConfigurationLevel(level) if level else None)
            except ValueError as exc:
                print_error(str(exc))
                raise click.exceptions.Exit(EXIT_INVALID_USAGE)
    finally:
        client.close()
    if entry is None:
        raise click.exceptions.Exit(EXIT_GENERIC_ERROR)
    click.echo(entry.value)
