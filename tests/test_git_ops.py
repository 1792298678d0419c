from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from gitbuddy.backend import ErrorKind, OperationError, OperationKind
from gitbuddy.git_ops import (
    GitBackend,
    classify_error,
    get_repo_root,
    parse_branches,
    parse_log,
    parse_remotes,
    parse_shortstat,
    parse_status,
    parse_track,
)
from gitbuddy.models import BranchScope, DiffStat, FileItem, FileStatus

GIT_AVAILABLE = shutil.which("git") is not None


def _run(cmd: list[str], cwd: Path | None = None) -> None:
    subprocess.run(cmd, cwd=str(cwd) if cwd else None, check=True, capture_output=True)


def _git(repo: Path, *args: str) -> None:
    _run(["git", "-C", str(repo), *args])


def _commit(repo: Path, name: str, content: str, message: str) -> None:
    (repo / name).write_text(content)
    _git(repo, "add", name)
    _git(repo, "commit", "-q", "-m", message)


def _init_repo(root: Path) -> Path:
    root.mkdir(parents=True)
    _run(["git", "init", "-q", "-b", "main", str(root)])
    _git(root, "config", "user.email", "test@example.com")
    _git(root, "config", "user.name", "Test")
    _git(root, "config", "commit.gpgsign", "false")
    _commit(root, "README.md", "hello\n", "init")
    return root


def _ops(backend: GitBackend, kind: OperationKind, target: str | None = None, **options):
    return backend.run(kind, target, options)


@pytest.mark.parametrize(
    "text,kind",
    [
        (
            "error: Your local changes to the following files would be overwritten by checkout:",
            ErrorKind.UNCOMMITTED_CHANGES,
        ),
        ("CONFLICT (content): Merge conflict in a.txt", ErrorKind.MERGE_CONFLICT),
        (" ! [rejected]        main -> main (fetch first)", ErrorKind.NON_FAST_FORWARD),
        ("fatal: Authentication failed for 'https://example.com/'", ErrorKind.AUTHENTICATION_REQUIRED),
        ("fatal: unable to access 'https://x/': Could not resolve host: x", ErrorKind.NETWORK_UNAVAILABLE),
        ("fatal: a branch named 'dev' already exists", ErrorKind.INVALID_OPERATION),
        ("fatal: something odd", ErrorKind.BACKEND_ERROR),
    ],
)
def test_classify_error(text: str, kind: ErrorKind) -> None:
    assert classify_error(text) is kind


def test_parse_track() -> None:
    assert parse_track("ahead 2, behind 1") == (2, 1)
    assert parse_track("behind 3") == (0, 3)
    assert parse_track("gone") == (0, 0)
    assert parse_track("") == (0, 0)


def test_parse_branches() -> None:
    output = "\n".join(
        [
            " \x00refs/heads/dev\x00\x00",
            "*\x00refs/heads/main\x00origin/main\x00ahead 1",
            " \x00refs/remotes/origin/HEAD\x00\x00",
            " \x00refs/remotes/origin/main\x00\x00",
        ]
    )
    branches = parse_branches(output)
    assert [(b.name, b.scope) for b in branches] == [
        ("main", BranchScope.LOCAL),
        ("dev", BranchScope.LOCAL),
        ("origin/main", BranchScope.REMOTE),
    ]
    assert branches[0].is_head
    assert branches[0].upstream == "origin/main"
    assert branches[0].ahead == 1
    assert branches[1].upstream is None
    assert branches[2].remote_name == "origin"


def test_parse_log() -> None:
    output = "a" * 40 + "\x00Merge dev\x00Ada\x001700000000\x00" + "b" * 40 + " " + "c" * 40
    (commit,) = parse_log(output)
    assert commit.summary == "Merge dev"
    assert commit.timestamp == 1700000000
    assert commit.is_merge


def test_parse_status() -> None:
    output = "\x00".join(
        [
            "MM both.py",
            "A  new.py",
            "R  moved.py",
            "old.py",
            "UU conflict.py",
            "?? notes.txt",
            "",
        ]
    )
    assert parse_status(output) == [
        FileItem("both.py", True, FileStatus.MODIFIED),
        FileItem("both.py", False, FileStatus.MODIFIED),
        FileItem("new.py", True, FileStatus.ADDED),
        FileItem("moved.py", True, FileStatus.RENAMED),
        FileItem("conflict.py", False, FileStatus.CONFLICTED),
        FileItem("notes.txt", False, FileStatus.UNTRACKED),
    ]


def test_parse_remotes() -> None:
    output = "origin\tgit@x:r.git (fetch)\norigin\tgit@x:r.git (push)\n"
    remotes = parse_remotes(output)
    assert [(r.name, r.url) for r in remotes] == [("origin", "git@x:r.git")]


def test_parse_shortstat() -> None:
    assert parse_shortstat(" 3 files changed, 10 insertions(+), 2 deletions(-)") == DiffStat(3, 10, 2)
    assert parse_shortstat(" 1 file changed, 1 deletion(-)") == DiffStat(1, 0, 1)
    assert parse_shortstat("") == DiffStat()


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_repo_root_and_queries(tmp_path: Path) -> None:
    repo = _init_repo(tmp_path / "repo")
    (repo / "sub").mkdir()
    assert get_repo_root(repo / "sub") == repo.resolve()
    backend = GitBackend(repo)
    assert backend.query_head() == "main"
    assert [b.name for b in backend.query_branches()] == ["main"]
    assert [c.summary for c in backend.query_log(10)] == ["init"]
    assert backend.query_status() == []
    assert backend.query_remotes() == []


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_branch_lifecycle(tmp_path: Path) -> None:
    repo = _init_repo(tmp_path / "repo")
    backend = GitBackend(repo)
    _ops(backend, OperationKind.CREATE_BRANCH, "dev")
    with pytest.raises(OperationError) as exc:
        _ops(backend, OperationKind.CREATE_BRANCH, "dev")
    assert exc.value.kind is ErrorKind.INVALID_OPERATION

    _ops(backend, OperationKind.CHECKOUT, "dev")
    heads = [b.name for b in backend.query_branches() if b.is_head]
    assert heads == ["dev"]

    with pytest.raises(OperationError) as exc:
        _ops(backend, OperationKind.DELETE_BRANCH, "dev")
    assert exc.value.kind is ErrorKind.INVALID_OPERATION

    _ops(backend, OperationKind.CHECKOUT, "main")
    _ops(backend, OperationKind.DELETE_BRANCH, "dev")
    assert [b.name for b in backend.query_branches()] == ["main"]


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_dirty_checkout_is_uncommitted_changes(tmp_path: Path) -> None:
    repo = _init_repo(tmp_path / "repo")
    backend = GitBackend(repo)
    _ops(backend, OperationKind.CREATE_BRANCH, "dev")
    _ops(backend, OperationKind.CHECKOUT, "dev")
    _commit(repo, "README.md", "dev\n", "dev change")
    _ops(backend, OperationKind.CHECKOUT, "main")
    (repo / "README.md").write_text("local\n")

    with pytest.raises(OperationError) as exc:
        _ops(backend, OperationKind.CHECKOUT, "dev")
    assert exc.value.kind is ErrorKind.UNCOMMITTED_CHANGES

    output = _ops(backend, OperationKind.CHECKOUT, "dev", stash=True)
    assert output.text == "Switched to branch 'dev'. (local changes stashed)"
    assert backend.query_head() == "dev"
    assert (repo / "README.md").read_text() == "dev\n"


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_untracked_file_blocking_checkout_is_stashed(tmp_path: Path) -> None:
    repo = _init_repo(tmp_path / "repo")
    backend = GitBackend(repo)
    _ops(backend, OperationKind.CREATE_BRANCH, "feature")
    _ops(backend, OperationKind.CHECKOUT, "feature")
    _commit(repo, "new.txt", "feature\n", "add new.txt")
    _ops(backend, OperationKind.CHECKOUT, "main")
    (repo / "new.txt").write_text("local\n")

    with pytest.raises(OperationError) as exc:
        _ops(backend, OperationKind.CHECKOUT, "feature")
    assert exc.value.kind is ErrorKind.UNCOMMITTED_CHANGES

    output = _ops(backend, OperationKind.CHECKOUT, "feature", stash=True)
    assert output.text.endswith("(local changes stashed)")
    assert backend.query_head() == "feature"
    assert (repo / "new.txt").read_text() == "feature\n"
    stashes = subprocess.run(
        ["git", "-C", str(repo), "stash", "list"], check=True, capture_output=True, text=True
    ).stdout
    assert "gitbuddy: checkout feature" in stashes


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_merge_conflict(tmp_path: Path) -> None:
    repo = _init_repo(tmp_path / "repo")
    backend = GitBackend(repo)
    _ops(backend, OperationKind.CREATE_BRANCH, "dev")
    _ops(backend, OperationKind.CHECKOUT, "dev")
    _commit(repo, "README.md", "dev\n", "dev change")
    _ops(backend, OperationKind.CHECKOUT, "main")
    _commit(repo, "README.md", "main\n", "main change")

    with pytest.raises(OperationError) as exc:
        _ops(backend, OperationKind.MERGE, "dev")
    assert exc.value.kind is ErrorKind.MERGE_CONFLICT
    assert FileItem("README.md", False, FileStatus.CONFLICTED) in backend.query_status()


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_stage_commit_and_revert(tmp_path: Path) -> None:
    repo = _init_repo(tmp_path / "repo")
    backend = GitBackend(repo)
    (repo / "a.txt").write_text("a\n")
    (repo / "b.txt").write_text("b\n")

    _ops(backend, OperationKind.STAGE_ALL, paths=("a.txt", "b.txt"))
    assert {(f.path, f.staged) for f in backend.query_status()} == {("a.txt", True), ("b.txt", True)}
    _ops(backend, OperationKind.UNSTAGE, "b.txt")
    assert FileItem("b.txt", False, FileStatus.UNTRACKED) in backend.query_status()

    output = _ops(backend, OperationKind.COMMIT, message="Add a")
    assert output.commit is not None
    assert output.commit.summary == "Add a"
    assert backend.query_log(1)[0].hash == output.commit.hash

    _ops(backend, OperationKind.REVERT, output.commit.hash, parent_count=1)
    assert FileItem("a.txt", True, FileStatus.DELETED) in backend.query_status()
    assert backend.query_log(1)[0].hash == output.commit.hash


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_commit_with_nothing_staged(tmp_path: Path) -> None:
    backend = GitBackend(_init_repo(tmp_path / "repo"))
    with pytest.raises(OperationError) as exc:
        _ops(backend, OperationKind.COMMIT, message="empty")
    assert exc.value.kind is ErrorKind.INVALID_OPERATION


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_remotes_fetch_and_pull_selected(tmp_path: Path) -> None:
    origin = _init_repo(tmp_path / "origin")
    clone = tmp_path / "clone"
    _run(["git", "clone", "-q", str(origin), str(clone)])
    _git(clone, "config", "user.email", "test@example.com")
    _git(clone, "config", "user.name", "Test")
    backend = GitBackend(clone)
    assert [r.name for r in backend.query_remotes()] == ["origin"]

    _git(origin, "branch", "dev")
    _ops(backend, OperationKind.FETCH, "origin")
    remote = [b.name for b in backend.query_branches() if b.scope is BranchScope.REMOTE]
    assert "origin/dev" in remote

    _ops(backend, OperationKind.CHECKOUT_REMOTE, "origin/dev")
    assert backend.query_head() == "dev"
    _ops(backend, OperationKind.CHECKOUT, "main")

    _git(origin, "checkout", "-q", "dev")
    _commit(origin, "dev.txt", "dev\n", "dev work")
    _ops(backend, OperationKind.PULL_BRANCH, "dev")
    assert backend.query_head() == "main"
    dev = next(b for b in backend.query_branches() if b.name == "dev")
    assert dev.ahead == 0 and dev.behind == 0

    _ops(backend, OperationKind.ADD_REMOTE, "mirror", url=str(origin))
    assert sorted(r.name for r in backend.query_remotes()) == ["mirror", "origin"]
    _ops(backend, OperationKind.REMOVE_REMOTE, "mirror")
    assert [r.name for r in backend.query_remotes()] == ["origin"]


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_fetch_requires_origin(tmp_path: Path) -> None:
    backend = GitBackend(_init_repo(tmp_path / "repo"))
    with pytest.raises(OperationError) as exc:
        _ops(backend, OperationKind.FETCH, "origin")
    assert exc.value.kind is ErrorKind.INVALID_OPERATION


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_push_without_origin_is_invalid(tmp_path: Path) -> None:
    backend = GitBackend(_init_repo(tmp_path / "repo"))
    with pytest.raises(OperationError) as exc:
        _ops(backend, OperationKind.PUSH, "main")
    assert exc.value.kind is ErrorKind.INVALID_OPERATION
    assert exc.value.message == "No remote named 'origin'."


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_show_and_checkout_commit(tmp_path: Path) -> None:
    repo = _init_repo(tmp_path / "repo")
    backend = GitBackend(repo)
    sha = backend.query_log(1)[0].hash
    output = _ops(backend, OperationKind.SHOW_COMMIT, sha)
    assert output.lines[0] == f"commit {sha}"
    _ops(backend, OperationKind.CHECKOUT_COMMIT, sha)
    assert backend.query_head() is None
    assert not any(b.is_head for b in backend.query_branches())


@pytest.mark.skipif(not GIT_AVAILABLE, reason="git missing")
def test_diffstat_and_file_diffs(tmp_path: Path) -> None:
    repo = _init_repo(tmp_path / "repo")
    backend = GitBackend(repo)
    assert backend.query_diffstat() == DiffStat()
    (repo / "README.md").write_text("hello\nworld\n")
    (repo / "notes.txt").write_text("fresh\n")
    assert backend.query_diffstat() == DiffStat(1, 1, 0)

    output = _ops(backend, OperationKind.SHOW_DIFF, "README.md", staged=False, untracked=False)
    assert "+world" in output.lines

    _git(repo, "add", "README.md")
    assert backend.query_diffstat() == DiffStat(1, 1, 0)
    assert _ops(backend, OperationKind.SHOW_DIFF, "README.md", staged=False).lines == ()
    assert "+world" in _ops(backend, OperationKind.SHOW_DIFF, "README.md", staged=True).lines

    output = _ops(backend, OperationKind.SHOW_DIFF, "notes.txt", untracked=True)
    assert "+fresh" in output.lines
