from __future__ import annotations

from fakes import FakeBackend

from gitbuddy import services
from gitbuddy.backend import Scope
from gitbuddy.cache import RepositoryStateCache
from gitbuddy.events import EventLoop, KeyPressed, RefreshTick
from gitbuddy.models import CommitItem, DiffStat, RepoSnapshot


def test_load_snapshot_only_queries_requested_scopes() -> None:
    backend = FakeBackend()
    snapshot = services.load_snapshot(backend, {Scope.FILES}, log_limit=2)
    assert snapshot.head == "main"
    assert not snapshot.detached
    assert len(snapshot.files) == 3
    assert snapshot.diffstat == DiffStat(2, 4, 2)
    assert snapshot.branches == []
    assert snapshot.commits == []
    assert services.load_snapshot(backend, {Scope.LOG}).diffstat == DiffStat()
    assert len(services.load_snapshot(backend, log_limit=2).commits) == 2


def test_cache_replaces_named_slices() -> None:
    backend = FakeBackend()
    cache = RepositoryStateCache()
    cache.apply(services.load_snapshot(backend), set(Scope))
    assert cache.generation == 1
    assert cache.diffstat == DiffStat(2, 4, 2)
    branches = cache.branches

    backend.unstaged.clear()
    backend.head = None
    cache.apply(services.load_snapshot(backend, {Scope.FILES}), {Scope.FILES})
    assert cache.files == []
    assert cache.diffstat == DiffStat()
    assert cache.branches == branches
    assert cache.detached
    assert cache.head is None


def test_prepend_commit_skips_duplicates() -> None:
    commit = CommitItem("f" * 40, "New", "Ada", 0)
    cache = RepositoryStateCache(RepoSnapshot(commits=[CommitItem("e" * 40, "Old", "Ada", 0)]))
    cache.prepend_commit(commit)
    cache.prepend_commit(commit)
    assert [c.summary for c in cache.commits] == ["New", "Old"]


def test_event_loop_applies_in_order() -> None:
    seen = []
    loop = EventLoop(seen.append)
    loop.post(KeyPressed("j"))
    loop.post(RefreshTick())
    loop.post(KeyPressed("k"))
    assert loop.pending() == 3
    assert loop.run_pending() == 3
    assert seen == [KeyPressed("j"), RefreshTick(), KeyPressed("k")]
    assert not loop.run_once(timeout=0.01)
