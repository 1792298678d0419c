"""Capability interface between the interaction core and a version-control backend."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from gitbuddy.models import BranchItem, CommitItem, DiffStat, FileItem, RemoteItem


class OperationKind(Enum):
    CHECKOUT = "checkout"
    CHECKOUT_REMOTE = "checkout-remote"
    CHECKOUT_COMMIT = "checkout-commit"
    CREATE_BRANCH = "create-branch"
    DELETE_BRANCH = "delete-branch"
    MERGE = "merge"
    FETCH = "fetch"
    PULL = "pull"
    PULL_BRANCH = "pull-branch"
    PUSH = "push"
    STAGE = "stage"
    UNSTAGE = "unstage"
    STAGE_ALL = "stage-all"
    UNSTAGE_ALL = "unstage-all"
    COMMIT = "commit"
    REVERT = "revert"
    ADD_REMOTE = "add-remote"
    REMOVE_REMOTE = "remove-remote"
    SHOW_COMMIT = "show-commit"
    SHOW_DIFF = "show-diff"
    REFRESH = "refresh"

    @property
    def label(self) -> str:
        return self.value.replace("-", " ")


class ErrorKind(Enum):
    INVALID_OPERATION = "InvalidOperation"
    UNCOMMITTED_CHANGES = "UncommittedChanges"
    MERGE_CONFLICT = "MergeConflict"
    NON_FAST_FORWARD = "NonFastForward"
    AUTHENTICATION_REQUIRED = "AuthenticationRequired"
    NETWORK_UNAVAILABLE = "NetworkUnavailable"
    BACKEND_ERROR = "BackendError"


class Scope(Enum):
    """Slices of repository state that can be re-queried independently."""

    BRANCHES = "branches"
    FILES = "files"
    LOG = "log"
    REMOTES = "remotes"


ALL_SCOPES = frozenset(Scope)

# Slices that may change after each kind of operation.
REFRESH_SCOPES: dict[OperationKind, frozenset[Scope]] = {
    OperationKind.CHECKOUT: ALL_SCOPES,
    OperationKind.CHECKOUT_REMOTE: ALL_SCOPES,
    OperationKind.CHECKOUT_COMMIT: ALL_SCOPES,
    OperationKind.CREATE_BRANCH: frozenset({Scope.BRANCHES}),
    OperationKind.DELETE_BRANCH: frozenset({Scope.BRANCHES}),
    OperationKind.MERGE: ALL_SCOPES,
    OperationKind.FETCH: frozenset({Scope.BRANCHES}),
    OperationKind.PULL: ALL_SCOPES,
    OperationKind.PULL_BRANCH: frozenset({Scope.BRANCHES}),
    OperationKind.PUSH: frozenset({Scope.BRANCHES}),
    OperationKind.STAGE: frozenset({Scope.FILES}),
    OperationKind.UNSTAGE: frozenset({Scope.FILES}),
    OperationKind.STAGE_ALL: frozenset({Scope.FILES}),
    OperationKind.UNSTAGE_ALL: frozenset({Scope.FILES}),
    # The new commit comes back with the result, so history is not re-read.
    OperationKind.COMMIT: frozenset({Scope.FILES, Scope.BRANCHES}),
    OperationKind.REVERT: frozenset({Scope.FILES}),
    OperationKind.ADD_REMOTE: frozenset({Scope.REMOTES, Scope.BRANCHES}),
    OperationKind.REMOVE_REMOTE: frozenset({Scope.REMOTES, Scope.BRANCHES}),
    OperationKind.SHOW_COMMIT: frozenset(),
    OperationKind.SHOW_DIFF: frozenset(),
}


class OperationError(Exception):
    """A backend operation failed.

    ``failed_targets`` lists the subset of a multi-target operation that did
    not go through; everything else in the request was applied.
    """

    def __init__(
        self, kind: ErrorKind, message: str, failed_targets: tuple[str, ...] = ()
    ) -> None:
        self.kind = kind
        self.message = message
        self.failed_targets = failed_targets
        super().__init__(f"{kind.value}: {message}")


@dataclass(frozen=True)
class OperationOutput:
    """What a successful operation reports back."""

    text: str = ""
    commit: CommitItem | None = None
    lines: tuple[str, ...] = field(default_factory=tuple)


class Backend(Protocol):
    """The narrow capability the interaction core needs from version control.

    ``run`` raises :class:`OperationError` on failure. Query methods return
    full snapshots.
    """

    def run(
        self, kind: OperationKind, target: str | None, options: Mapping[str, Any]
    ) -> OperationOutput: ...

    def query_branches(self) -> list[BranchItem]: ...

    def query_log(self, limit: int) -> list[CommitItem]: ...

    def query_status(self) -> list[FileItem]: ...

    def query_remotes(self) -> list[RemoteItem]: ...

    def query_diffstat(self) -> DiffStat:
        """Files changed, insertions and deletions of the working tree against HEAD."""
        ...

    def query_head(self) -> str | None:
        """Name of the checked-out branch, or None when HEAD is detached."""
        ...
