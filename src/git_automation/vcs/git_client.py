"""
Git client implementation for git_automation.

This module wraps the repository operations the automation layer needs
on top of dulwich. Remote operations go through dulwich's client layer;
every SSH location is served by :class:`~git_automation.transport.SshExeVendor`,
so fetches and pushes run the system ``ssh`` binary. Results are handed
back as the read-only types from :mod:`git_automation.results`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from dulwich import porcelain
from dulwich.client import GitClient as DulwichClient
from dulwich.client import SSHGitClient, get_transport_and_path
from dulwich.config import Config, ConfigFile
from dulwich.errors import GitProtocolError, NotGitRepository
from dulwich.graph import can_fast_forward
from dulwich.objectspec import parse_commit
from dulwich.repo import Repo

from git_automation.config.configuration import (
    ConfigurationEntry,
    ConfigurationLevel,
    get_string,
)
from git_automation.results import (
    CommitInfo,
    MergeResult,
    MergeStatus,
    PushResult,
    SendBranchResult,
)
from git_automation.transport.vendor import DEFAULT_EXIT_GRACE_PERIOD, SshExeVendor


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


BRANCH_PREFIX = b"refs/heads/"
NOTES_PREFIX = b"refs/notes/"
NON_FAST_FORWARD = "non-fast-forward"

GLOBAL_CONFIG_PATH = Path.home() / ".gitconfig"
SYSTEM_CONFIG_PATH = Path("/etc/gitconfig")


class GitError(Exception):
    """Raised when a Git operation fails."""

    pass


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def _to_text(value: Union[str, bytes]) -> str:
    return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value


def _decode_refs(refs) -> Dict[str, str]:
    # Newer dulwich versions wrap the mapping in a result object.
    refs = getattr(refs, "refs", refs) or {}
    return {_to_text(name): _to_text(sha) for name, sha in refs.items() if sha is not None}


def _report_progress(data: bytes) -> None:
    logger.debug("remote: %s", _to_text(data).rstrip())


def open_remote(remote_url: str, vendor: SshExeVendor) -> Tuple[DulwichClient, str]:
    """Return a dulwich client and path for ``remote_url``; SSH goes through ``vendor``."""
    client, path = get_transport_and_path(remote_url)
    if isinstance(client, SSHGitClient):
        client.ssh_vendor = vendor
    return client, path


def ls_remote(remote_url: str, vendor: SshExeVendor) -> Dict[str, str]:
    """Return the refs advertised by ``remote_url``; no local repository is needed."""
    client, path = open_remote(remote_url, vendor)
    logger.debug("Listing refs of %s", remote_url)
    try:
        return _decode_refs(client.get_refs(path))
    except GitProtocolError as exc:
        raise GitError(f"Listing refs of {remote_url} failed: {exc}") from exc


class GitClient:
    """Client for a local Git repository and the remotes it talks to."""

    def __init__(
        self,
        repo_root: Path,
        ssh_executable: str = "ssh",
        on_stderr: Optional[Callable[[str], None]] = None,
        exit_grace_period: Optional[float] = DEFAULT_EXIT_GRACE_PERIOD,
    ) -> None:
        self.repo_root = repo_root
        try:
            self.repo = Repo(str(repo_root))
        except NotGitRepository as exc:
            raise GitError(f"Not a Git repository: {repo_root}") from exc
        self.vendor = SshExeVendor(
            ssh_executable, on_stderr=on_stderr, exit_grace_period=exit_grace_period
        )

    # ------------------------------------------------------------------
    # Static helpers
    # ------------------------------------------------------------------
    @staticmethod
    def is_repo(path: Path) -> bool:
        """Return True if the given path is the root of a Git repository."""
        return (path / ".git").exists()

    @staticmethod
    def find_repo_root(start: Path) -> Optional[Path]:
        """Find the root of the Git repository starting from ``start``.

        Walk upwards until a ``.git`` directory is found or the filesystem
        root is reached.
        """
        current = start.resolve()
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                return None
            current = current.parent

    def close(self) -> None:
        self.repo.close()

    # ------------------------------------------------------------------
    # Local inspection
    # ------------------------------------------------------------------
    def get_current_branch(self) -> str:
        """Return the name of the checked-out branch.

        Raises
        ------
        GitError
            If HEAD is detached.
        """
        try:
            return _to_text(porcelain.active_branch(self.repo))
        except (KeyError, IndexError, ValueError) as exc:
            raise GitError("HEAD does not point at a branch") from exc

    def get_commit(self, rev: str = "HEAD", with_notes: bool = True) -> CommitInfo:
        """Return metadata of the commit ``rev`` resolves to.

        Notes attached to the commit under any ``refs/notes/*`` ref are
        included, ordered by ref name, unless ``with_notes`` is False.
        """
        try:
            commit = parse_commit(self.repo, _to_bytes(rev))
        except (KeyError, ValueError) as exc:
            raise GitError(f"Unknown revision: {rev}") from exc
        notes = self._notes_for(commit.id) if with_notes else []
        return CommitInfo.from_commit(commit, notes=notes)

    def _notes_for(self, sha: bytes) -> List[bytes]:
        notes = []
        for name in sorted(self.repo.refs.keys(base=NOTES_PREFIX)):
            note = porcelain.notes_show(self.repo, sha, ref=name)
            if note is not None:
                notes.append(note)
        return notes

    def get_config_string(
        self, key: str, level: Optional[ConfigurationLevel] = None
    ) -> Optional[ConfigurationEntry]:
        """Read a configuration variable.

        Parameters
        ----------
        key : str
            Dotted key, e.g. ``remote.origin.url``.
        level : ConfigurationLevel, optional
            Restrict the lookup to one file. ``None`` reads the stacked
            view git itself would use.
        """
        config: Config
        if level is None:
            config = self.repo.get_config_stack()
        elif level is ConfigurationLevel.LOCAL:
            config = self.repo.get_config()
        else:
            path = GLOBAL_CONFIG_PATH if level is ConfigurationLevel.GLOBAL else SYSTEM_CONFIG_PATH
            if not path.exists():
                return None
            config = ConfigFile.from_path(str(path))
        return get_string(config, key, level=level)

    # ------------------------------------------------------------------
    # Remote operations
    # ------------------------------------------------------------------
    def _client_for(self, remote_url: str) -> Tuple[DulwichClient, str]:
        return open_remote(remote_url, self.vendor)

    def ls_remote(self, remote_url: str) -> Dict[str, str]:
        """Return the refs advertised by ``remote_url``."""
        return ls_remote(remote_url, self.vendor)

    def fetch(self, remote_url: str) -> Dict[str, str]:
        """Fetch all objects from ``remote_url`` and return its refs.

        Local branches are not touched; see :meth:`merge_fast_forward`.
        """
        client, path = self._client_for(remote_url)
        logger.debug("Fetching from %s", remote_url)
        try:
            result = client.fetch(path, self.repo, progress=_report_progress)
        except GitProtocolError as exc:
            raise GitError(f"Fetching from {remote_url} failed: {exc}") from exc
        return _decode_refs(result)

    def merge_fast_forward(self, branch: str, target_sha: str) -> MergeResult:
        """Move ``branch`` forward to ``target_sha`` when that needs no merge commit.

        Returns
        -------
        MergeResult
            ``UP_TO_DATE`` when the branch already contains the target,
            ``FAST_FORWARD`` when it was advanced, ``NON_FAST_FORWARD``
            when the histories diverged (nothing is changed).
        """
        ref = BRANCH_PREFIX + _to_bytes(branch)
        target = _to_bytes(target_sha)
        if target not in self.repo.object_store:
            raise GitError(f"Commit {target_sha} is not in the local object store")

        try:
            local = self.repo.refs[ref]
        except KeyError:
            local = None

        if local is not None and (local == target or can_fast_forward(self.repo, target, local)):
            return MergeResult(MergeStatus.UP_TO_DATE, self.get_commit(_to_text(local)))

        if local is not None and not can_fast_forward(self.repo, local, target):
            logger.info("Branch %s has diverged from %s", branch, target_sha)
            return MergeResult(MergeStatus.NON_FAST_FORWARD)

        checked_out = self.repo.refs.read_ref(b"HEAD") == b"ref: " + ref
        self.repo.refs[ref] = target
        if checked_out:
            porcelain.reset(self.repo, "hard", target)
        logger.debug("Fast-forwarded %s to %s", branch, target_sha)
        return MergeResult(MergeStatus.FAST_FORWARD, self.get_commit(target_sha))

    def push_branch(
        self,
        remote_url: str,
        branch: str,
        remote_branch: Optional[str] = None,
        force: bool = False,
    ) -> PushResult:
        """Push ``branch`` to ``remote_branch`` (default: same name) on ``remote_url``.

        Unless ``force`` is set, an update that would drop remote commits
        is not sent and is reported as rejected in the result.

        Raises
        ------
        GitError
            If the branch does not exist or the protocol exchange fails.
        """
        local_ref = BRANCH_PREFIX + _to_bytes(branch)
        remote_ref = BRANCH_PREFIX + _to_bytes(remote_branch or branch)
        try:
            local_sha = self.repo.refs[local_ref]
        except KeyError as exc:
            raise GitError(f"Branch '{branch}' does not exist") from exc

        rejected = []

        def update_refs(refs):
            new_refs = dict(refs)
            current = refs.get(remote_ref)
            if not force and current is not None and current != local_sha:
                if current not in self.repo.object_store or not can_fast_forward(
                    self.repo, current, local_sha
                ):
                    rejected.append(remote_ref)
                    return new_refs
            new_refs[remote_ref] = local_sha
            return new_refs

        client, path = self._client_for(remote_url)
        logger.debug("Pushing %s to %s on %s", branch, _to_text(remote_ref), remote_url)
        try:
            result = client.send_pack(
                path,
                update_refs,
                generate_pack_data=self.repo.generate_pack_data,
                progress=_report_progress,
            )
        except GitProtocolError as exc:
            raise GitError(f"Pushing to {remote_url} failed: {exc}") from exc

        push = PushResult.from_send_pack_result(remote_url, result)
        if rejected:
            logger.warning("Rejected non-fast-forward push of %s to %s", branch, remote_url)
            status = dict(push.ref_status)
            status[_to_text(remote_ref)] = NON_FAST_FORWARD
            push = PushResult(remote_url=remote_url, ref_status=status, agent=push.agent)
        return push

    def send_branch(self, remote_url: str, branch: str) -> SendBranchResult:
        """Bring ``branch`` in line with ``remote_url`` and push it there.

        The remote branch, when it exists, is fast-forwarded into the
        local one first. If the two have diverged nothing is pushed and
        the returned result ends with the ``NON_FAST_FORWARD`` merge.
        """
        result = SendBranchResult()
        remote_refs = self.fetch(remote_url)
        remote_sha = remote_refs.get(_to_text(BRANCH_PREFIX) + branch)
        if remote_sha is not None:
            merge = self.merge_fast_forward(branch, remote_sha)
            result.merge_results.append(merge)
            if merge.status is MergeStatus.NON_FAST_FORWARD:
                logger.warning("Not pushing %s: it has diverged from %s", branch, remote_url)
                return result
        result.push_results.append(self.push_branch(remote_url, branch))
        return result
