"""Git subprocess operations."""

import logging
import os
import subprocess
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from gitbuddy.backend import ErrorKind, OperationError, OperationKind, OperationOutput
from gitbuddy.models import (
    BranchItem,
    BranchScope,
    CommitItem,
    DiffStat,
    FileItem,
    FileStatus,
    RemoteItem,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%H%x00%s%x00%an%x00%ct%x00%P"
STASHED_NOTE = " (local changes stashed)"
CONFLICT_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}
STATUS_CODES = {
    "M": FileStatus.MODIFIED,
    "T": FileStatus.MODIFIED,
    "A": FileStatus.ADDED,
    "C": FileStatus.ADDED,
    "D": FileStatus.DELETED,
    "R": FileStatus.RENAMED,
}

# Checked in order: the first kind whose markers appear in git's output wins.
ERROR_MARKERS: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (
        ErrorKind.UNCOMMITTED_CHANGES,
        (
            "would be overwritten by",
            "Please commit your changes or stash them",
            "Your local changes",
        ),
    ),
    (
        ErrorKind.MERGE_CONFLICT,
        ("CONFLICT", "Automatic merge failed", "fix conflicts", "unmerged files"),
    ),
    (
        ErrorKind.NON_FAST_FORWARD,
        (
            "non-fast-forward",
            "[rejected]",
            "fetch first",
            "Not possible to fast-forward",
            "Updates were rejected",
        ),
    ),
    (
        ErrorKind.AUTHENTICATION_REQUIRED,
        (
            "Authentication failed",
            "could not read Username",
            "could not read Password",
            "terminal prompts disabled",
            "Permission denied (publickey",
            "returned error: 403",
        ),
    ),
    (
        ErrorKind.NETWORK_UNAVAILABLE,
        (
            "Could not resolve host",
            "Connection refused",
            "Connection timed out",
            "Network is unreachable",
            "Could not read from remote repository",
            "unable to access",
        ),
    ),
    (
        ErrorKind.INVALID_OPERATION,
        (
            "not a valid branch name",
            "is not a valid",
            "not a valid object name",
            "already exists",
            "did not match any",
            "Cannot delete branch",
            "No such remote",
            "nothing to commit",
            "no changes added to commit",
        ),
    ),
]


class GitError(Exception):
    """Git command failed."""

    def __init__(self, cmd: Sequence[str], stderr: str, stdout: str = "") -> None:
        self.cmd = cmd
        self.stderr = stderr
        self.stdout = stdout
        super().__init__(f"git {' '.join(cmd)}: {stderr or stdout}")

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stderr, self.stdout) if part)


def run(args: Sequence[str], cwd: Path | None = None) -> str:
    """Run a git command and return stdout."""
    env = {**os.environ, "LC_ALL": "C", "GIT_TERMINAL_PROMPT": "0"}
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=False,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
    )
    if result.returncode != 0:
        raise GitError(args, result.stderr.strip(), result.stdout.strip())
    return result.stdout.strip()


def try_run(args: Sequence[str], cwd: Path | None = None) -> str | None:
    """Run a git command, returning None on failure."""
    try:
        return run(args, cwd=cwd)
    except GitError:
        return None


def get_repo_root(cwd: Path) -> Path | None:
    """Top level of the working tree containing ``cwd``."""
    top = try_run(["rev-parse", "--show-toplevel"], cwd=cwd)
    return Path(top) if top else None


def classify_error(text: str) -> ErrorKind:
    """Map git's error output to an :class:`ErrorKind`."""
    for kind, markers in ERROR_MARKERS:
        if any(marker in text for marker in markers):
            return kind
    return ErrorKind.BACKEND_ERROR


def to_operation_error(exc: GitError) -> OperationError:
    message = exc.stderr or exc.stdout or "Unknown error"
    return OperationError(classify_error(exc.output), message)


def parse_track(track: str) -> tuple[int, int]:
    """Parse ``%(upstream:track,nobracket)`` ("ahead 1, behind 2") into (ahead, behind)."""
    ahead = 0
    behind = 0
    for part in track.split(","):
        word, _, count = part.strip().partition(" ")
        if word == "ahead" and count.isdigit():
            ahead = int(count)
        elif word == "behind" and count.isdigit():
            behind = int(count)
    return ahead, behind


def parse_branches(output: str) -> list[BranchItem]:
    """Parse for-each-ref output of HEAD marker, full ref, upstream and track fields."""
    branches: list[BranchItem] = []
    for line in output.splitlines():
        fields = line.split("\x00")
        if len(fields) < 4:
            continue
        head_marker, ref, upstream, track = fields[:4]
        if ref.startswith("refs/heads/"):
            ahead, behind = parse_track(track)
            branches.append(
                BranchItem(
                    name=ref.removeprefix("refs/heads/"),
                    is_head=head_marker == "*",
                    scope=BranchScope.LOCAL,
                    upstream=upstream or None,
                    ahead=ahead,
                    behind=behind,
                )
            )
        elif ref.startswith("refs/remotes/") and not ref.endswith("/HEAD"):
            branches.append(
                BranchItem(name=ref.removeprefix("refs/remotes/"), scope=BranchScope.REMOTE)
            )
    branches.sort(key=lambda item: (item.scope is not BranchScope.LOCAL, not item.is_head))
    return branches


def parse_log(output: str) -> list[CommitItem]:
    commits: list[CommitItem] = []
    for line in output.splitlines():
        fields = line.split("\x00")
        if len(fields) < 5:
            continue
        sha, summary, author, ts, parents = fields[:5]
        commits.append(
            CommitItem(
                hash=sha,
                summary=summary,
                author=author,
                timestamp=int(ts) if ts.isdigit() else 0,
                parent_count=len(parents.split()),
            )
        )
    return commits


def parse_status(output: str) -> list[FileItem]:
    """Parse ``git status --porcelain=v1 -z`` output."""
    items: list[FileItem] = []
    entries = output.split("\x00")
    idx = 0
    while idx < len(entries):
        entry = entries[idx]
        idx += 1
        if len(entry) < 4:
            continue
        code, path = entry[:2], entry[3:]
        index_code, tree_code = code[0], code[1]
        if index_code in "RC":
            # Rename and copy entries are followed by the source path.
            idx += 1
        if code == "!!":
            continue
        if code == "??":
            items.append(FileItem(path, staged=False, status=FileStatus.UNTRACKED))
            continue
        if code in CONFLICT_CODES:
            items.append(FileItem(path, staged=False, status=FileStatus.CONFLICTED))
            continue
        if index_code in STATUS_CODES:
            items.append(FileItem(path, staged=True, status=STATUS_CODES[index_code]))
        if tree_code in STATUS_CODES:
            items.append(FileItem(path, staged=False, status=STATUS_CODES[tree_code]))
    return items


def parse_remotes(output: str) -> list[RemoteItem]:
    remotes: list[RemoteItem] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 3 and parts[2] == "(fetch)":
            remotes.append(RemoteItem(name=parts[0], url=parts[1]))
    return remotes


def parse_shortstat(output: str) -> DiffStat:
    """Parse ``git diff --shortstat`` ("2 files changed, 5 insertions(+), 1 deletion(-)")."""
    counts = {"file": 0, "insertion": 0, "deletion": 0}
    for part in output.split(","):
        count, _, word = part.strip().partition(" ")
        for name in counts:
            if word.startswith(name) and count.isdigit():
                counts[name] = int(count)
    return DiffStat(counts["file"], counts["insertion"], counts["deletion"])


class GitBackend:
    """:class:`gitbuddy.backend.Backend` implemented with the git command line."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = repo_root
        self._handlers: dict[
            OperationKind, Callable[[str | None, Mapping[str, Any]], OperationOutput]
        ] = {
            OperationKind.CHECKOUT: self._checkout,
            OperationKind.CHECKOUT_REMOTE: self._checkout_remote,
            OperationKind.CHECKOUT_COMMIT: self._checkout_commit,
            OperationKind.CREATE_BRANCH: self._create_branch,
            OperationKind.DELETE_BRANCH: self._delete_branch,
            OperationKind.MERGE: self._merge,
            OperationKind.FETCH: self._fetch,
            OperationKind.PULL: self._pull,
            OperationKind.PULL_BRANCH: self._pull_branch,
            OperationKind.PUSH: self._push,
            OperationKind.STAGE: self._stage,
            OperationKind.UNSTAGE: self._unstage,
            OperationKind.STAGE_ALL: self._stage_all,
            OperationKind.UNSTAGE_ALL: self._unstage_all,
            OperationKind.COMMIT: self._commit,
            OperationKind.REVERT: self._revert,
            OperationKind.ADD_REMOTE: self._add_remote,
            OperationKind.REMOVE_REMOTE: self._remove_remote,
            OperationKind.SHOW_COMMIT: self._show_commit,
            OperationKind.SHOW_DIFF: self._show_diff,
            OperationKind.REFRESH: lambda target, options: OperationOutput(),
        }

    def _git(self, *args: str) -> str:
        logger.debug("git %s", " ".join(args))
        return run(args, cwd=self.repo_root)

    def run(
        self, kind: OperationKind, target: str | None, options: Mapping[str, Any]
    ) -> OperationOutput:
        try:
            return self._handlers[kind](target, options)
        except GitError as exc:
            raise to_operation_error(exc) from exc

    # Queries

    def query_head(self) -> str | None:
        return try_run(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=self.repo_root)

    def has_commits(self) -> bool:
        return try_run(["rev-parse", "--verify", "--quiet", "HEAD"], cwd=self.repo_root) is not None

    def query_branches(self) -> list[BranchItem]:
        out = self._git(
            "for-each-ref",
            "--format=%(HEAD)%00%(refname)%00%(upstream:short)%00%(upstream:track,nobracket)",
            "refs/heads",
            "refs/remotes",
        )
        return parse_branches(out)

    def query_log(self, limit: int) -> list[CommitItem]:
        if not self.has_commits():
            return []
        return parse_log(self._git("log", f"-n{limit}", f"--format={LOG_FORMAT}"))

    def query_status(self) -> list[FileItem]:
        # Not self._git: run() strips the output, which would eat a leading space of XY.
        env = {**os.environ, "LC_ALL": "C"}
        result = subprocess.run(
            ["git", "status", "--porcelain=v1", "-z", "--untracked-files=all"],
            cwd=self.repo_root,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if result.returncode != 0:
            raise GitError(["status"], result.stderr.strip())
        return parse_status(result.stdout)

    def query_remotes(self) -> list[RemoteItem]:
        return parse_remotes(self._git("remote", "-v"))

    def query_diffstat(self) -> DiffStat:
        if self.has_commits():
            return parse_shortstat(self._git("diff", "--shortstat", "HEAD"))
        return parse_shortstat(self._git("diff", "--shortstat", "--cached"))

    def branch_exists(self, branch: str) -> bool:
        return try_run(["show-ref", "--verify", f"refs/heads/{branch}"], cwd=self.repo_root) is not None

    def get_upstream(self, branch: str) -> str | None:
        return try_run(
            ["rev-parse", "--abbrev-ref", f"{branch}@{{upstream}}"], cwd=self.repo_root
        )

    def _latest_commit(self) -> CommitItem | None:
        commits = parse_log(self._git("log", "-n1", f"--format={LOG_FORMAT}"))
        return commits[0] if commits else None

    # Operations

    def _stash(self, label: str) -> str:
        # Untracked files can block a checkout too, so they go into the stash.
        self._git("stash", "push", "--include-untracked", "-m", f"gitbuddy: checkout {label}")
        return STASHED_NOTE

    def _checkout(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        branch = _require(target, "branch")
        note = self._stash(branch) if options.get("stash") else ""
        if options.get("force"):
            self._git("checkout", "--force", branch)
        else:
            self._git("checkout", branch)
        return OperationOutput(text=f"Switched to branch '{branch}'.{note}")

    def _checkout_remote(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        remote_branch = _require(target, "remote branch")
        _, _, local = remote_branch.partition("/")
        if not local:
            raise OperationError(ErrorKind.INVALID_OPERATION, f"Not a remote branch: {remote_branch}")
        if self.branch_exists(local):
            raise OperationError(
                ErrorKind.INVALID_OPERATION, f"Local branch '{local}' already exists."
            )
        note = self._stash(local) if options.get("stash") else ""
        args = ["checkout", "-b", local, "--track", remote_branch]
        if options.get("force"):
            args.insert(1, "--force")
        self._git(*args)
        return OperationOutput(
            text=f"Switched to new branch '{local}' tracking {remote_branch}.{note}"
        )

    def _checkout_commit(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        sha = _require(target, "commit")
        note = self._stash(sha[:7]) if options.get("stash") else ""
        args = ["checkout", "--detach", sha]
        if options.get("force"):
            args.insert(1, "--force")
        self._git(*args)
        return OperationOutput(text=f"HEAD is now detached at {sha[:7]}.{note}")

    def _create_branch(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        branch = _require(target, "branch name")
        # New branches always start at HEAD, never at a cursor position elsewhere.
        self._git("branch", branch, "HEAD")
        return OperationOutput(text=f"Created branch '{branch}'.")

    def _delete_branch(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        branch = _require(target, "branch")
        if branch == self.query_head():
            raise OperationError(
                ErrorKind.INVALID_OPERATION, f"Cannot delete the checked-out branch '{branch}'."
            )
        self._git("branch", "-D", branch)
        return OperationOutput(text=f"Deleted branch '{branch}'.")

    def _merge(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        branch = _require(target, "branch")
        if branch == self.query_head():
            raise OperationError(
                ErrorKind.INVALID_OPERATION, f"Cannot merge '{branch}' into itself."
            )
        out = self._git("merge", "--no-edit", branch)
        return OperationOutput(text=out.splitlines()[-1] if out else f"Merged '{branch}'.")

    def _require_origin(self) -> None:
        if "origin" not in {remote.name for remote in self.query_remotes()}:
            raise OperationError(ErrorKind.INVALID_OPERATION, "No remote named 'origin'.")

    def _fetch(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        self._require_origin()
        self._git("fetch", "--prune", "origin")
        return OperationOutput(text="Fetched origin.")

    def _pull(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        head = self.query_head()
        if head is None:
            raise OperationError(ErrorKind.INVALID_OPERATION, "Cannot pull with a detached HEAD.")
        if self.get_upstream(head) is None:
            raise OperationError(
                ErrorKind.INVALID_OPERATION, f"Branch '{head}' has no upstream."
            )
        self._git("pull", "--no-rebase", "--no-edit")
        return OperationOutput(text=f"Pulled '{head}'.")

    def _pull_branch(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        branch = _require(target, "branch")
        if branch == self.query_head():
            return self._pull(branch, options)
        upstream = self.get_upstream(branch)
        if upstream is None:
            raise OperationError(
                ErrorKind.INVALID_OPERATION, f"Branch '{branch}' has no upstream."
            )
        remote, _, remote_branch = upstream.partition("/")
        # Fetching into the ref fast-forwards it without touching HEAD.
        self._git("fetch", remote, f"{remote_branch}:{branch}")
        return OperationOutput(text=f"Updated '{branch}' from {upstream}.")

    def _push(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        head = self.query_head()
        if head is None:
            raise OperationError(ErrorKind.INVALID_OPERATION, "Cannot push a detached HEAD.")
        if self.get_upstream(head):
            self._git("push")
        else:
            self._require_origin()
            self._git("push", "-u", "origin", head)
        return OperationOutput(text=f"Pushed '{head}'.")

    def _stage(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        path = _require(target, "path")
        self._git("add", "-A", "--", path)
        return OperationOutput(text=f"Staged {path}.")

    def _unstage(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        path = _require(target, "path")
        if self.has_commits():
            self._git("reset", "-q", "HEAD", "--", path)
        else:
            self._git("rm", "--cached", "-q", "--", path)
        return OperationOutput(text=f"Unstaged {path}.")

    def _apply_each(
        self,
        paths: Sequence[str],
        action: Callable[[str | None, Mapping[str, Any]], OperationOutput],
        verb: str,
    ) -> OperationOutput:
        failed: list[str] = []
        first_error: OperationError | None = None
        for path in paths:
            try:
                action(path, {})
            except GitError as exc:
                failed.append(path)
                first_error = first_error or to_operation_error(exc)
        if first_error is not None:
            raise OperationError(
                first_error.kind,
                f"Could not {verb} {', '.join(failed)}: {first_error.message}",
                tuple(failed),
            )
        return OperationOutput(text=f"{verb.capitalize()}d {len(paths)} file(s).")

    def _stage_all(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        return self._apply_each(list(options.get("paths", [])), self._stage, "stage")

    def _unstage_all(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        return self._apply_each(list(options.get("paths", [])), self._unstage, "unstage")

    def _commit(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        message = str(options.get("message", "")).strip()
        if not message:
            raise OperationError(ErrorKind.INVALID_OPERATION, "Commit message is empty.")
        self._git("commit", "-q", "-m", message)
        commit = self._latest_commit()
        summary = commit.summary if commit else message.splitlines()[0]
        return OperationOutput(text=f"Committed: {summary}", commit=commit)

    def _revert(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        sha = _require(target, "commit")
        args = ["revert", "--no-commit"]
        if int(options.get("parent_count", 1)) > 1:
            args += ["-m", "1"]
        self._git(*args, sha)
        return OperationOutput(text=f"Reverted {sha[:7]} into the index (not committed).")

    def _add_remote(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        name = _require(target, "remote name")
        url = str(options.get("url", "")).strip()
        if not url:
            raise OperationError(ErrorKind.INVALID_OPERATION, "Remote URL is empty.")
        self._git("remote", "add", name, url)
        return OperationOutput(text=f"Added remote '{name}'.")

    def _remove_remote(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        name = _require(target, "remote name")
        self._git("remote", "remove", name)
        return OperationOutput(text=f"Removed remote '{name}'.")

    def _show_commit(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        sha = _require(target, "commit")
        out = self._git("show", "--stat", "--format=fuller", sha)
        return OperationOutput(text=sha, lines=tuple(out.splitlines()))

    def _show_diff(self, target: str | None, options: Mapping[str, Any]) -> OperationOutput:
        path = _require(target, "path")
        if options.get("untracked"):
            # Untracked files have no index entry; diff them against an empty file.
            try:
                out = self._git("diff", "--no-index", "--", os.devnull, path)
            except GitError as exc:
                # --no-index exits 1 when the files differ.
                if not exc.stdout:
                    raise
                out = exc.stdout
        elif options.get("staged"):
            out = self._git("diff", "--cached", "--", path)
        else:
            out = self._git("diff", "--", path)
        return OperationOutput(text=path, lines=tuple(out.splitlines()))


def _require(target: str | None, what: str) -> str:
    if not target:
        raise OperationError(ErrorKind.INVALID_OPERATION, f"No {what} selected.")
    return target
