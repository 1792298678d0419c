"""In-memory repository state cache."""

from collections.abc import Iterable

from gitbuddy.backend import Scope
from gitbuddy.models import (
    BranchItem,
    CommitItem,
    DiffStat,
    FileItem,
    RemoteItem,
    RepoSnapshot,
)


class RepositoryStateCache:
    """Last-known-good snapshot of the repository.

    Only the event-loop thread writes here. Slices are replaced wholesale,
    never patched item by item.
    """

    def __init__(self, snapshot: RepoSnapshot | None = None) -> None:
        self._snapshot = snapshot or RepoSnapshot()
        self.generation = 0

    @property
    def snapshot(self) -> RepoSnapshot:
        return self._snapshot

    @property
    def branches(self) -> list[BranchItem]:
        return self._snapshot.branches

    @property
    def files(self) -> list[FileItem]:
        return self._snapshot.files

    @property
    def commits(self) -> list[CommitItem]:
        return self._snapshot.commits

    @property
    def remotes(self) -> list[RemoteItem]:
        return self._snapshot.remotes

    @property
    def head(self) -> str | None:
        return self._snapshot.head

    @property
    def detached(self) -> bool:
        return self._snapshot.detached

    @property
    def diffstat(self) -> DiffStat:
        return self._snapshot.diffstat

    def apply(self, snapshot: RepoSnapshot, scopes: Iterable[Scope]) -> None:
        """Replace the slices named by ``scopes`` with those of ``snapshot``."""
        current = self._snapshot
        wanted = frozenset(scopes)
        self._snapshot = RepoSnapshot(
            branches=list(snapshot.branches) if Scope.BRANCHES in wanted else current.branches,
            files=list(snapshot.files) if Scope.FILES in wanted else current.files,
            commits=list(snapshot.commits) if Scope.LOG in wanted else current.commits,
            remotes=list(snapshot.remotes) if Scope.REMOTES in wanted else current.remotes,
            head=snapshot.head,
            detached=snapshot.detached,
            diffstat=snapshot.diffstat if Scope.FILES in wanted else current.diffstat,
        )
        self.generation += 1

    def prepend_commit(self, commit: CommitItem) -> None:
        """Put a freshly created commit at the top of history."""
        if self._snapshot.commits and self._snapshot.commits[0].hash == commit.hash:
            return
        self._snapshot.commits = [commit, *self._snapshot.commits]
        self.generation += 1
