import unittest
from datetime import timedelta

from dulwich.objects import Commit

from git_automation.results import CommitInfo, Signature


EMPTY_TREE = b"4b825dc642cb6eb9a060e54bf8d69288fbee4904"
PARENT = b"a" * 40


def make_commit(message=b"Add feature\n\nLonger description.\n", encoding=None):
    commit = Commit()
    commit.tree = EMPTY_TREE
    commit.parents = [PARENT]
    commit.author = b"Jane Doe <jane@example.com>"
    commit.committer = b"CI Bot <ci@example.com>"
    commit.author_time = 1700000000
    commit.author_timezone = 3600
    commit.commit_time = 1700000100
    commit.commit_timezone = -7200
    if encoding is not None:
        commit.encoding = encoding
    commit.message = message
    return commit


class TestCommitInfo(unittest.TestCase):
    def test_fields_mirror_the_commit(self) -> None:
        commit = make_commit()
        info = CommitInfo.from_commit(commit)

        self.assertEqual(info.id, commit.id.decode("ascii"))
        self.assertEqual(info.sha, info.id)
        self.assertEqual(info.message, "Add feature\n\nLonger description.\n")
        self.assertEqual(info.message_short, "Add feature")
        self.assertEqual(info.parents, ("a" * 40,))
        self.assertIsNone(info.encoding)

        self.assertEqual(info.author.name, "Jane Doe")
        self.assertEqual(info.author.email, "jane@example.com")
        self.assertEqual(info.author.when.timestamp(), 1700000000)
        self.assertEqual(info.author.when.utcoffset(), timedelta(hours=1))
        self.assertEqual(info.committer.name, "CI Bot")
        self.assertEqual(info.committer.when.utcoffset(), timedelta(hours=-2))

    def test_declared_encoding_is_used(self) -> None:
        commit = make_commit(message="Café\n".encode("iso-8859-1"), encoding=b"ISO-8859-1")
        info = CommitInfo.from_commit(commit)
        self.assertEqual(info.encoding, "ISO-8859-1")
        self.assertEqual(info.message_short, "Café")

    def test_is_read_only(self) -> None:
        info = CommitInfo.from_commit(make_commit())
        with self.assertRaises(AttributeError):
            info.message = "changed"

    def test_empty_message(self) -> None:
        info = CommitInfo.from_commit(make_commit(message=b""))
        self.assertEqual(info.message_short, "")

    def test_notes_are_copied(self) -> None:
        info = CommitInfo.from_commit(make_commit(), notes=[b"Reviewed-by: QA\n", b"Tested \xe2\x9c\x93\n"])
        self.assertEqual(info.notes, ("Reviewed-by: QA\n", "Tested ✓\n"))

    def test_no_notes(self) -> None:
        self.assertEqual(CommitInfo.from_commit(make_commit()).notes, ())


class TestSignature(unittest.TestCase):
    def test_identity_without_email_brackets(self) -> None:
        signature = Signature.from_identity(b"just a name", 0, 0)
        self.assertEqual(signature.name, "just a name")
        self.assertEqual(signature.email, "")

    def test_str(self) -> None:
        signature = Signature.from_identity(b"Jane Doe <jane@example.com>", 0, 0)
        self.assertEqual(str(signature), "Jane Doe <jane@example.com>")


if __name__ == "__main__":
    unittest.main()
