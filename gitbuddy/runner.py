"""Asynchronous execution of backend operations."""

import itertools
import logging
import threading
from collections import Counter
from collections.abc import Callable, Mapping
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from gitbuddy import services
from gitbuddy.backend import (
    REFRESH_SCOPES,
    Backend,
    ErrorKind,
    OperationError,
    OperationKind,
    OperationOutput,
    Scope,
)
from gitbuddy.events import OperationCompleted
from gitbuddy.models import CommitItem, RepoSnapshot

logger = logging.getLogger(__name__)

_request_ids = itertools.count(1)


@dataclass(frozen=True)
class Continuation:
    """What the application does with a result once it is back on the loop thread."""

    name: str = "refresh"
    args: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OperationRequest:
    kind: OperationKind
    target: str | None = None
    options: Mapping[str, Any] = field(default_factory=dict)
    continuation: Continuation = field(default_factory=Continuation)
    refresh: frozenset[Scope] | None = None
    id: int = field(default_factory=lambda: next(_request_ids))

    @property
    def scopes(self) -> frozenset[Scope]:
        if self.refresh is not None:
            return self.refresh
        return REFRESH_SCOPES.get(self.kind, frozenset())

    def describe(self) -> str:
        if self.target:
            return f"{self.kind.label} {self.target}"
        return self.kind.label


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one request. Always carries the request it answers."""

    request: OperationRequest
    output: OperationOutput | None = None
    error: OperationError | None = None
    snapshot: RepoSnapshot | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None

    @property
    def commit(self) -> CommitItem | None:
        return self.output.commit if self.output else None


class OperationRunner:
    """Runs each request on a worker and posts exactly one completion event.

    Identical requests are not merged: each submission runs on its own.
    """

    def __init__(
        self,
        backend: Backend,
        post: Callable[[OperationCompleted], None],
        executor: Executor | None = None,
        log_limit: int = services.DEFAULT_LOG_LIMIT,
        workers: int = 4,
    ) -> None:
        self.backend = backend
        self.post = post
        self.log_limit = log_limit
        self._executor = executor or ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="gitbuddy-op"
        )
        self._lock = threading.Lock()
        self._outstanding: Counter[OperationKind] = Counter()

    def submit(self, request: OperationRequest) -> Future[OperationResult]:
        logger.debug("submit #%d %s", request.id, request.describe())
        with self._lock:
            self._outstanding[request.kind] += 1
        return self._executor.submit(self._execute, request)

    def outstanding(self, kind: OperationKind | None = None) -> int:
        with self._lock:
            if kind is None:
                return sum(self._outstanding.values())
            return self._outstanding[kind]

    def busy_kinds(self) -> set[OperationKind]:
        with self._lock:
            return {kind for kind, count in self._outstanding.items() if count > 0}

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def _execute(self, request: OperationRequest) -> OperationResult:
        result = self._perform(request)
        with self._lock:
            self._outstanding[request.kind] -= 1
        self.post(OperationCompleted(result))
        return result

    def _perform(self, request: OperationRequest) -> OperationResult:
        output: OperationOutput | None = None
        error: OperationError | None = None
        try:
            output = self.backend.run(request.kind, request.target, request.options)
        except OperationError as exc:
            error = exc
        except Exception as exc:
            logger.exception("operation #%d %s crashed", request.id, request.describe())
            error = OperationError(ErrorKind.BACKEND_ERROR, str(exc) or type(exc).__name__)

        if error is None:
            logger.info("operation #%d %s succeeded", request.id, request.describe())
        else:
            logger.warning(
                "operation #%d %s failed: %s", request.id, request.describe(), error
            )

        # Failed operations can still change the repository (a conflicted merge),
        # so the refresh runs either way.
        snapshot: RepoSnapshot | None = None
        if request.scopes:
            try:
                snapshot = services.load_snapshot(self.backend, request.scopes, self.log_limit)
            except Exception as exc:
                logger.warning("refresh after #%d failed: %s", request.id, exc)
                if error is None and request.kind is OperationKind.REFRESH:
                    error = OperationError(ErrorKind.BACKEND_ERROR, str(exc))

        return OperationResult(request=request, output=output, error=error, snapshot=snapshot)
