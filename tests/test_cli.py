import unittest
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock, patch

from click.testing import CliRunner

import git_automation.cli as cli
from git_automation.config.configuration import ConfigurationEntry, ConfigurationLevel
from git_automation.config.loader import ConfigError
from git_automation.results import (
    CommitInfo,
    MergeResult,
    MergeStatus,
    PushResult,
    SendBranchResult,
    Signature,
)
from git_automation.transport.errors import RemoteProcessFailure
from git_automation.vcs.git_client import GitError


URL = "ssh://git@example.com/repo.git"
SHA = "a" * 40


def make_commit(sha: str = SHA, parents=()) -> CommitInfo:
    who = Signature("Ada Lovelace", "ada@example.com", datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))
    return CommitInfo(
        id=sha,
        author=who,
        committer=who,
        encoding="utf-8",
        message="Add engine\n\nLonger description.\n",
        message_short="Add engine",
        parents=tuple(parents),
    )


class DummyGitClient:
    def __init__(self):
        self.push_result = PushResult(URL, {"refs/heads/main": None})
        self.send_result = SendBranchResult(push_results=[self.push_result])
        self.commit = make_commit()
        self.config_entry = None
        self.error = None
        self.calls = []
        self.closed = False

    def close(self):
        self.closed = True

    def _maybe_fail(self):
        if self.error is not None:
            raise self.error

    def fetch(self, url):
        self.calls.append(("fetch", url))
        self._maybe_fail()
        return {"refs/heads/main": SHA}

    def push_branch(self, url, branch, remote_branch=None, force=False):
        self.calls.append(("push", url, branch, remote_branch, force))
        self._maybe_fail()
        return self.push_result

    def send_branch(self, url, branch):
        self.calls.append(("send", url, branch))
        self._maybe_fail()
        return self.send_result

    def get_commit(self, rev="HEAD"):
        self.calls.append(("commit", rev))
        self._maybe_fail()
        return self.commit

    def get_config_string(self, key, level=None):
        self.calls.append(("config", key, level))
        self._maybe_fail()
        return self.config_entry


class CliTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = CliRunner()
        self.dummy = DummyGitClient()
        self.client_class = Mock(return_value=self.dummy)
        self.client_class.find_repo_root.return_value = Path("/repo")
        patcher = patch.object(cli, "GitClient", self.client_class)
        patcher.start()
        self.addCleanup(patcher.stop)

    def invoke(self, *args):
        return self.runner.invoke(cli.main, list(args))


class TestGlobalOptions(CliTestCase):
    def test_version(self) -> None:
        result = self.invoke("--version")
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.assertIn(cli.__version__, result.output)

    def test_config_error(self) -> None:
        with patch.object(cli, "load_config", side_effect=ConfigError("bad json")):
            result = self.invoke("fetch", URL)
        self.assertEqual(result.exit_code, cli.EXIT_CONFIG_ERROR)

    def test_no_repository(self) -> None:
        self.client_class.find_repo_root.return_value = None
        result = self.invoke("fetch", URL)
        self.assertEqual(result.exit_code, cli.EXIT_NO_REPO)
        self.client_class.assert_not_called()

    def test_client_gets_configured_transport(self) -> None:
        result = self.invoke("--ssh", "/opt/bin/ssh", "--repo", "/work", "fetch", URL)
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.client_class.find_repo_root.assert_called_once_with(Path("/work"))
        _, kwargs = self.client_class.call_args
        self.assertEqual(kwargs["ssh_executable"], "/opt/bin/ssh")
        self.assertEqual(kwargs["exit_grace_period"], 5.0)
        self.assertIs(kwargs["on_stderr"], cli.echo_ssh_stderr)


class TestLsRemote(CliTestCase):
    def test_lists_refs_sorted(self) -> None:
        refs = {"refs/heads/main": SHA, "HEAD": SHA}
        with patch.object(cli, "ls_remote", return_value=refs) as ls:
            result = self.invoke("ls-remote", URL)
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.assertEqual(result.output.splitlines(), [f"{SHA}\tHEAD", f"{SHA}\trefs/heads/main"])
        url, vendor = ls.call_args[0]
        self.assertEqual(url, URL)
        self.assertEqual(vendor.ssh_executable, "ssh")

    def test_transport_failure(self) -> None:
        failure = RemoteProcessFailure(255, "Permission denied (publickey).")
        with patch.object(cli, "ls_remote", side_effect=failure):
            result = self.invoke("ls-remote", URL)
        self.assertEqual(result.exit_code, cli.EXIT_TRANSPORT_FAILURE)
        self.assertIn("Permission denied", result.output)


class TestFetch(CliTestCase):
    def test_fetch(self) -> None:
        result = self.invoke("fetch", URL)
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.assertIn("Fetched 1 ref", result.output)
        self.assertIn(SHA[:12], result.output)
        self.assertTrue(self.dummy.closed)

    def test_git_error(self) -> None:
        self.dummy.error = GitError("Fetching failed")
        result = self.invoke("fetch", URL)
        self.assertEqual(result.exit_code, cli.EXIT_VCS_FAILURE)
        self.assertTrue(self.dummy.closed)

    def test_unexpected_error(self) -> None:
        self.dummy.error = RuntimeError("boom")
        result = self.invoke("fetch", URL)
        self.assertEqual(result.exit_code, cli.EXIT_GENERIC_ERROR)


class TestPush(CliTestCase):
    def test_push(self) -> None:
        result = self.invoke("push", URL, "main", "--remote-branch", "release", "--force")
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.assertEqual(self.dummy.calls, [("push", URL, "main", "release", True)])
        self.assertIn("Pushed main", result.output)
        self.assertTrue(self.dummy.closed)

    def test_rejected_push(self) -> None:
        self.dummy.push_result = PushResult(URL, {"refs/heads/main": "non-fast-forward"})
        result = self.invoke("push", URL, "main")
        self.assertEqual(result.exit_code, cli.EXIT_VCS_FAILURE)
        self.assertIn("non-fast-forward", result.output)


class TestSendBranch(CliTestCase):
    def test_send_after_fast_forward(self) -> None:
        self.dummy.send_result = SendBranchResult(
            merge_results=[MergeResult(MergeStatus.FAST_FORWARD, make_commit())],
            push_results=[PushResult(URL, {"refs/heads/main": None})],
        )
        result = self.invoke("send-branch", URL, "main")
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.assertIn("fast forward", result.output)
        self.assertIn("Sent main", result.output)
        self.assertTrue(self.dummy.closed)

    def test_diverged_branch_is_not_sent(self) -> None:
        self.dummy.send_result = SendBranchResult(
            merge_results=[MergeResult(MergeStatus.NON_FAST_FORWARD)]
        )
        result = self.invoke("send-branch", URL, "main")
        self.assertEqual(result.exit_code, cli.EXIT_VCS_FAILURE)
        self.assertIn("non fast forward", result.output)


class TestShowCommit(CliTestCase):
    def test_show_head(self) -> None:
        result = self.invoke("show-commit")
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.assertEqual(self.dummy.calls, [("commit", "HEAD")])
        self.assertIn(f"commit {SHA}", result.output)
        self.assertIn("Author: Ada Lovelace <ada@example.com>", result.output)
        self.assertIn("    Add engine", result.output)
        self.assertNotIn("Merge:", result.output)
        self.assertNotIn("Notes:", result.output)
        self.assertTrue(self.dummy.closed)

    def test_show_notes(self) -> None:
        self.dummy.commit = replace(make_commit(), notes=("Reviewed-by: QA\n",))
        result = self.invoke("show-commit")
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.assertIn("Notes:\n    Reviewed-by: QA", result.output)

    def test_show_merge_commit(self) -> None:
        self.dummy.commit = make_commit(parents=("b" * 40, "c" * 40))
        result = self.invoke("show-commit", "v1.0")
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.assertIn("Merge: bbbbbbb ccccccc", result.output)

    def test_unknown_revision(self) -> None:
        self.dummy.error = GitError("Unknown revision: nope")
        result = self.invoke("show-commit", "nope")
        self.assertEqual(result.exit_code, cli.EXIT_VCS_FAILURE)


class TestConfigGet(CliTestCase):
    def test_prints_value(self) -> None:
        self.dummy.config_entry = ConfigurationEntry("user.name", "Ada", ConfigurationLevel.GLOBAL)
        result = self.invoke("config-get", "user.name", "--level", "global")
        self.assertEqual(result.exit_code, cli.EXIT_SUCCESS)
        self.assertEqual(result.output.strip(), "Ada")
        self.assertEqual(self.dummy.calls, [("config", "user.name", ConfigurationLevel.GLOBAL)])

    def test_missing_key(self) -> None:
        result = self.invoke("config-get", "user.name")
        self.assertEqual(result.exit_code, cli.EXIT_GENERIC_ERROR)

    def test_malformed_key(self) -> None:
        self.dummy.error = ValueError("key must have a section and a name")
        result = self.invoke("config-get", "core")
        self.assertEqual(result.exit_code, cli.EXIT_INVALID_USAGE)
        self.assertTrue(self.dummy.closed)
