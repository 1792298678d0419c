"""Data models for gitbuddy."""

from dataclasses import dataclass, field
from enum import Enum


class PaneId(Enum):
    """The five focusable panes, numbered as on the keyboard."""

    BRANCHES = 1
    FILES = 2
    LOG = 3
    REMOTES = 4
    DETAIL = 5

    @property
    def title(self) -> str:
        return self.name.capitalize()


class BranchScope(Enum):
    LOCAL = "local"
    REMOTE = "remote"


class FileStatus(Enum):
    MODIFIED = "M"
    ADDED = "A"
    DELETED = "D"
    RENAMED = "R"
    UNTRACKED = "?"
    CONFLICTED = "U"


@dataclass(frozen=True)
class BranchItem:
    """A branch as shown in the Branches pane."""

    name: str
    is_head: bool = False
    scope: BranchScope = BranchScope.LOCAL
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0

    @property
    def key(self) -> str:
        return f"{self.scope.value}:{self.name}"

    @property
    def remote_name(self) -> str | None:
        """Remote part of a remote-tracking branch name ("origin/x" -> "origin")."""
        if self.scope is not BranchScope.REMOTE:
            return None
        return self.name.split("/", 1)[0]


@dataclass(frozen=True)
class FileItem:
    """A changed path. Staged and unstaged changes of one path are separate items."""

    path: str
    staged: bool
    status: FileStatus

    @property
    def key(self) -> str:
        return f"{int(self.staged)}:{self.path}"

    @property
    def is_conflicted(self) -> bool:
        return self.status is FileStatus.CONFLICTED


@dataclass(frozen=True)
class CommitItem:
    """A commit in the Log pane."""

    hash: str
    summary: str
    author: str
    timestamp: int
    parent_count: int = 1

    @property
    def key(self) -> str:
        return self.hash

    @property
    def short_hash(self) -> str:
        return self.hash[:7]

    @property
    def is_merge(self) -> bool:
        return self.parent_count > 1


@dataclass(frozen=True)
class RemoteItem:
    """A configured remote."""

    name: str
    url: str

    @property
    def key(self) -> str:
        return self.name


@dataclass(frozen=True)
class DiffStat:
    """Size of the uncommitted changes against HEAD (`git diff --shortstat`)."""

    files: int = 0
    insertions: int = 0
    deletions: int = 0


@dataclass
class RepoSnapshot:
    """A full view of the repository as reported by the backend.

    Every slice is a complete listing, never a diff against an earlier snapshot.
    """

    branches: list[BranchItem] = field(default_factory=list)
    files: list[FileItem] = field(default_factory=list)
    commits: list[CommitItem] = field(default_factory=list)
    remotes: list[RemoteItem] = field(default_factory=list)
    head: str | None = None
    detached: bool = False
    diffstat: DiffStat = field(default_factory=DiffStat)

    @property
    def head_branch(self) -> BranchItem | None:
        for branch in self.branches:
            if branch.is_head:
                return branch
        return None

    @property
    def has_staged(self) -> bool:
        return any(item.staged for item in self.files)
