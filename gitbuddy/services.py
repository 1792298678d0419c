"""Snapshot loading on top of a backend."""

from collections.abc import Iterable

from gitbuddy.backend import ALL_SCOPES, Backend, Scope
from gitbuddy.models import RepoSnapshot

DEFAULT_LOG_LIMIT = 200


def load_snapshot(
    backend: Backend,
    scopes: Iterable[Scope] = ALL_SCOPES,
    log_limit: int = DEFAULT_LOG_LIMIT,
) -> RepoSnapshot:
    """Query the requested slices of repository state.

    Slices not named in ``scopes`` are left empty; callers merge the result
    into the cache with the same set of scopes.
    """
    wanted = frozenset(scopes)
    snapshot = RepoSnapshot()
    snapshot.head = backend.query_head()
    if Scope.BRANCHES in wanted:
        snapshot.branches = backend.query_branches()
    if Scope.FILES in wanted:
        snapshot.files = backend.query_status()
        snapshot.diffstat = backend.query_diffstat()
    if Scope.LOG in wanted:
        snapshot.commits = backend.query_log(log_limit)
    if Scope.REMOTES in wanted:
        snapshot.remotes = backend.query_remotes()
    snapshot.detached = snapshot.head is None
    return snapshot
