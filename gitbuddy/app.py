from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Any

from gitbuddy.backend import (
    ALL_SCOPES,
    Backend,
    ErrorKind,
    OperationError,
    OperationKind,
    Scope,
)
from gitbuddy.cache import RepositoryStateCache
from gitbuddy.config import Settings
from gitbuddy.events import Event, EventLoop, KeyPressed, OperationCompleted, RefreshTick
from gitbuddy.models import BranchScope, FileStatus, PaneId
from gitbuddy.overlays import (
    AddRemoteInput,
    CommitMessageInput,
    ConfirmPrompt,
    ErrorPopup,
    FuzzyFindInput,
    NewBranchInput,
    Outcome,
    OutcomeKind,
    Overlay,
    OverlayStack,
)
from gitbuddy.panes import BranchesPane, DetailPane, FilesPane, LogPane, Pane, RemotesPane
from gitbuddy.router import (
    INITIAL_STATE,
    Action,
    ActionKind,
    FocusState,
    check,
    route,
    transition,
    with_overlay,
)
from gitbuddy.runner import Continuation, OperationRequest, OperationResult, OperationRunner

logger = logging.getLogger(__name__)

Editor = Callable[[str], str | None]

CHECKOUT_KINDS = {
    OperationKind.CHECKOUT,
    OperationKind.CHECKOUT_REMOTE,
    OperationKind.CHECKOUT_COMMIT,
}

# Operations whose outstanding work shows a busy marker on a pane.
PANE_KINDS: dict[PaneId, set[OperationKind]] = {
    PaneId.BRANCHES: {
        OperationKind.CHECKOUT,
        OperationKind.CHECKOUT_REMOTE,
        OperationKind.CREATE_BRANCH,
        OperationKind.DELETE_BRANCH,
        OperationKind.MERGE,
        OperationKind.FETCH,
        OperationKind.PULL,
        OperationKind.PULL_BRANCH,
    },
    PaneId.FILES: {
        OperationKind.STAGE,
        OperationKind.UNSTAGE,
        OperationKind.STAGE_ALL,
        OperationKind.UNSTAGE_ALL,
        OperationKind.COMMIT,
        OperationKind.PUSH,
        OperationKind.SHOW_DIFF,
    },
    PaneId.LOG: {
        OperationKind.CHECKOUT_COMMIT,
        OperationKind.REVERT,
        OperationKind.SHOW_COMMIT,
    },
    PaneId.REMOTES: {OperationKind.ADD_REMOTE, OperationKind.REMOVE_REMOTE},
    PaneId.DETAIL: {OperationKind.SHOW_COMMIT, OperationKind.SHOW_DIFF},
}

COMMIT_TEMPLATE = "\n# Write the commit message above. Lines starting with '#' are ignored.\n"


@dataclass(frozen=True)
class StatusMessage:
    text: str
    error: bool = False


def strip_comments(message: str) -> str:
    lines = [line for line in message.splitlines() if not line.startswith("#")]
    return "\n".join(lines).strip()


class Application:
    """The interaction core.

    Every mutation of panes, overlays, focus and cache happens in
    :meth:`handle`, called by the event loop on a single thread. Backend work
    goes through the runner and comes back as ``OperationCompleted`` events.
    """

    def __init__(
        self,
        backend: Backend,
        settings: Settings | None = None,
        executor: Executor | None = None,
        editor: Editor | None = None,
    ) -> None:
        self.backend = backend
        self.settings = settings or Settings()
        self.editor = editor
        self.cache = RepositoryStateCache()
        self.branches = BranchesPane()
        self.files = FilesPane()
        self.log = LogPane()
        self.remotes = RemotesPane()
        self.detail = DetailPane()
        self.panes: dict[PaneId, Pane[Any]] = {
            PaneId.BRANCHES: self.branches,
            PaneId.FILES: self.files,
            PaneId.LOG: self.log,
            PaneId.REMOTES: self.remotes,
            PaneId.DETAIL: self.detail,
        }
        self.overlays = OverlayStack()
        self.state: FocusState = INITIAL_STATE
        self.status: StatusMessage | None = None
        self.last_error: OperationError | None = None
        self.should_quit = False
        self.loop = EventLoop(self.handle)
        self.runner = OperationRunner(
            backend,
            self.loop.post,
            executor=executor,
            log_limit=self.settings.log_limit,
            workers=self.settings.workers,
        )
        self.detail.set_content("Keys", help_lines())
        self.focused_pane.on_focus_gained()

    # Properties

    @property
    def focused_pane(self) -> Pane[Any]:
        return self.panes[self.state.pane]

    @property
    def overlay(self) -> Overlay | None:
        return self.overlays.top

    def busy(self, pane_id: PaneId) -> bool:
        return bool(self.runner.busy_kinds() & PANE_KINDS[pane_id])

    def summary(self) -> str:
        """Checked-out branch and the size of the uncommitted changes."""
        if not self.cache.generation:
            return "Loading..."
        if self.cache.detached:
            where = "HEAD detached"
        else:
            where = f"On {self.cache.head}"
            branch = self.cache.snapshot.head_branch
            if branch is not None and branch.upstream:
                where += f" ({branch.behind}↓ {branch.ahead}↑ {branch.upstream})"
        stat = self.cache.diffstat
        return f"{where}  {stat.files} file(s) changed, +{stat.insertions} -{stat.deletions}"

    # Lifecycle

    def start(self) -> OperationRequest:
        """Load the whole repository state once."""
        return self.submit(
            OperationRequest(
                OperationKind.REFRESH,
                refresh=ALL_SCOPES,
                continuation=Continuation("initial"),
            )
        )

    def shutdown(self) -> None:
        self.runner.shutdown(wait=False)

    def post_key(self, key: str) -> None:
        self.loop.post(KeyPressed(key))

    def tick(self) -> None:
        self.loop.post(RefreshTick())

    # Event handling

    def handle(self, event: Event) -> None:
        if isinstance(event, KeyPressed):
            self.handle_key(event.key)
        elif isinstance(event, OperationCompleted):
            self.complete(event.result)
        elif isinstance(event, RefreshTick):
            self.refresh(passive=True)

    def handle_key(self, key: str) -> None:
        check(self.state)
        action = route(self.state, key, self.focused_pane.bindings())
        self.dispatch(action)

    def dispatch(self, action: Action) -> None:
        if action.kind is ActionKind.QUIT:
            self.should_quit = True
        elif action.kind is ActionKind.FOCUS:
            self.focus(action.pane or self.state.pane)
        elif action.kind is ActionKind.MOVE:
            self.focused_pane.move(action.delta)
        elif action.kind is ActionKind.OVERLAY_KEY and action.key is not None:
            self.overlay_key(action.key)
        elif action.kind is ActionKind.PANE and action.name is not None:
            handler = getattr(self, f"action_{action.name}", None)
            if handler is None:
                logger.error("no handler for action %s", action.name)
                return
            handler()

    def focus(self, pane_id: PaneId) -> None:
        if pane_id is self.state.pane:
            return
        self.focused_pane.on_focus_lost()
        self.state = transition(self.state, Action(ActionKind.FOCUS, pane=pane_id))
        self.focused_pane.on_focus_gained()

    def set_status(self, text: str, error: bool = False) -> None:
        self.status = StatusMessage(text, error)

    # Overlays

    def open_overlay(self, overlay: Overlay) -> None:
        self.overlays.push(overlay)
        self._sync_overlay_state()

    def close_overlay(self, overlay: Overlay) -> None:
        self.overlays.remove(overlay)
        self._sync_overlay_state()

    def _sync_overlay_state(self) -> None:
        top = self.overlays.top
        self.state = with_overlay(self.state, top.kind if top else None)

    def overlay_key(self, key: str) -> None:
        overlay = self.overlays.top
        if overlay is None:
            return
        outcome = overlay.handle_key(key)
        if outcome.kind is OutcomeKind.INVALID:
            self.set_status(outcome.message or "Invalid input.", error=True)
        elif outcome.kind is OutcomeKind.CANCEL:
            self.close_overlay(overlay)
            cancel = getattr(self, f"cancel_{overlay.action}", None)
            if cancel is not None:
                cancel(overlay)
        elif outcome.kind is OutcomeKind.SUBMIT:
            self.close_overlay(overlay)
            getattr(self, f"submit_{overlay.action}")(overlay, outcome.values)
        elif outcome.kind in (OutcomeKind.CHANGED, OutcomeKind.NAVIGATE):
            changed = getattr(self, f"changed_{overlay.action}", None)
            if changed is not None:
                changed(overlay, outcome)

    # Requests

    def submit(self, request: OperationRequest) -> OperationRequest:
        self.runner.submit(request)
        return request

    def refresh(self, passive: bool = False) -> OperationRequest | None:
        if passive and self.runner.outstanding(OperationKind.REFRESH):
            return None
        return self.submit(OperationRequest(OperationKind.REFRESH, refresh=ALL_SCOPES))

    def reject(self, message: str) -> None:
        """Report an operation refused before reaching the backend."""
        self.report_failure(OperationError(ErrorKind.INVALID_OPERATION, message))

    def report_failure(self, error: OperationError, title: str = "Error") -> None:
        self.last_error = error
        self.set_status(f"{error.kind.value}: {error.message}", error=True)
        self.open_overlay(ErrorPopup(f"{title}: {error.kind.value}", error.message))

    # Completion

    def complete(self, result: OperationResult) -> None:
        request = result.request
        if result.snapshot is not None:
            self.cache.apply(result.snapshot, request.scopes)
            self.sync_panes(request.scopes)
        if result.error is not None:
            self.on_failure(result, result.error)
            return
        if result.output and result.output.text and request.kind is not OperationKind.REFRESH:
            self.set_status(result.output.text)
        after = getattr(self, f"after_{request.continuation.name}", None)
        if after is not None:
            after(result)

    def on_failure(self, result: OperationResult, error: OperationError) -> None:
        request = result.request
        if error.kind is ErrorKind.MERGE_CONFLICT:
            self.last_error = error
            self.set_status(f"Conflicts after {request.describe()}: resolve them in Files.", error=True)
            self.focus(PaneId.FILES)
            self.files.flag_conflicts()
            return
        if error.kind is ErrorKind.UNCOMMITTED_CHANGES and request.kind in CHECKOUT_KINDS:
            self.last_error = error
            self.set_status("Local changes would be overwritten.", error=True)
            self.open_overlay(
                ConfirmPrompt(
                    f"Local changes would be overwritten by checkout of {request.target}.",
                    "checkout_dirty",
                    {"request": request},
                    choices={"s": ("stash", "Stash and checkout"), "d": ("discard", "Discard and checkout")},
                )
            )
            return
        self.report_failure(error, title=request.kind.label.capitalize())

    def sync_panes(self, scopes: frozenset[Scope]) -> None:
        if Scope.BRANCHES in scopes:
            self.branches.set_items(self.cache.branches)
        if Scope.FILES in scopes:
            self.files.set_items(self.cache.files)
        if Scope.LOG in scopes:
            self.log.set_items(self.cache.commits)
        if Scope.REMOTES in scopes:
            self.remotes.set_items(self.cache.remotes)

    def after_initial(self, result: OperationResult) -> None:
        self.branches.select_head()

    def after_checkout(self, result: OperationResult) -> None:
        self.branches.select_head()

    def after_checkout_commit(self, result: OperationResult) -> None:
        if result.request.target:
            self.log.select_key(result.request.target)
        self.set_status(f"{result.output.text if result.output else ''} Not on any branch.".strip())

    def after_select_branch(self, result: OperationResult) -> None:
        self.branches.select_key(f"local:{result.request.continuation.args['name']}")

    def after_select_remote(self, result: OperationResult) -> None:
        self.remotes.select_key(result.request.continuation.args["name"])

    def after_commit(self, result: OperationResult) -> None:
        if result.commit is None:
            self.submit(OperationRequest(OperationKind.REFRESH, refresh=frozenset({Scope.LOG})))
            return
        self.cache.prepend_commit(result.commit)
        self.log.set_items(self.cache.commits)
        self.log.select_index(0)

    def after_show_commit(self, result: OperationResult) -> None:
        target = result.request.target or ""
        lines = result.output.lines if result.output else ()
        self.detail.set_content(f"Commit {target[:7]}", lines)
        self.focus(PaneId.DETAIL)

    def after_show_diff(self, result: OperationResult) -> None:
        path = result.request.target or ""
        lines = result.output.lines if result.output else ()
        staged = " (staged)" if result.request.options.get("staged") else ""
        self.detail.set_content(f"Diff {path}{staged}", lines or ["No changes."])
        self.focus(PaneId.DETAIL)

    # Branches pane

    def action_checkout(self) -> None:
        item = self.branches.selected()
        if item is None:
            self.set_status("No branch selected.")
            return
        if item.scope is BranchScope.REMOTE:
            kind = OperationKind.CHECKOUT_REMOTE
        elif item.is_head:
            self.set_status(f"Already on '{item.name}'.")
            return
        else:
            kind = OperationKind.CHECKOUT
        self.submit(OperationRequest(kind, item.name, continuation=Continuation("checkout")))

    def action_delete_branch(self) -> None:
        item = self.branches.selected()
        if item is None:
            self.set_status("No branch selected.")
            return
        if item.scope is not BranchScope.LOCAL:
            self.reject("Only local branches can be deleted.")
            return
        if item.is_head:
            self.reject(f"Cannot delete the checked-out branch '{item.name}'.")
            return
        self.open_overlay(ConfirmPrompt(f"Delete branch {item.name}?", "delete_branch", {"branch": item.name}))

    def action_new_branch(self) -> None:
        self.open_overlay(NewBranchInput())

    def action_merge(self) -> None:
        item = self.branches.selected()
        if item is None:
            self.set_status("No branch selected.")
            return
        if item.is_head:
            self.reject(f"Cannot merge '{item.name}' into itself.")
            return
        self.submit(OperationRequest(OperationKind.MERGE, item.name))

    def action_fetch(self) -> None:
        self.submit(OperationRequest(OperationKind.FETCH, "origin"))

    def action_pull(self) -> None:
        head = self.cache.head
        if head is None:
            self.reject("Cannot pull with a detached HEAD.")
            return
        self.submit(OperationRequest(OperationKind.PULL, head))

    def action_pull_selected(self) -> None:
        item = self.branches.selected()
        if item is None:
            self.set_status("No branch selected.")
            return
        if item.scope is not BranchScope.LOCAL:
            self.reject("Select a local branch to pull into.")
            return
        self.submit(OperationRequest(OperationKind.PULL_BRANCH, item.name))

    def action_prev_tab(self) -> None:
        self.branches.cycle_tab(-1)

    def action_next_tab(self) -> None:
        self.branches.cycle_tab(1)

    def submit_delete_branch(self, overlay: Overlay, values: Mapping[str, Any]) -> None:
        self.submit(OperationRequest(OperationKind.DELETE_BRANCH, overlay.context["branch"]))

    def submit_create_branch(self, overlay: Overlay, values: Mapping[str, Any]) -> None:
        name = values["name"]
        self.submit(
            OperationRequest(
                OperationKind.CREATE_BRANCH,
                name,
                continuation=Continuation("select_branch", {"name": name}),
            )
        )

    def submit_checkout_dirty(self, overlay: Overlay, values: Mapping[str, Any]) -> None:
        original: OperationRequest = overlay.context["request"]
        option = "stash" if values["choice"] == "stash" else "force"
        self.submit(
            OperationRequest(
                original.kind,
                original.target,
                options={**original.options, option: True},
                continuation=original.continuation,
            )
        )

    # Files pane

    def action_stage(self) -> None:
        item = self.files.selected()
        if item is None:
            self.set_status("Working tree clean.")
            return
        if item.staged:
            self.set_status(f"{item.path} is already staged.")
            return
        self.submit(OperationRequest(OperationKind.STAGE, item.path))

    def action_unstage(self) -> None:
        item = self.files.selected()
        if item is None:
            self.set_status("Working tree clean.")
            return
        if not item.staged:
            self.set_status(f"{item.path} is not staged.")
            return
        self.submit(OperationRequest(OperationKind.UNSTAGE, item.path))

    def _paths(self, staged: bool) -> list[str]:
        paths: list[str] = []
        for item in self.files.items():
            if item.staged is staged and item.path not in paths:
                paths.append(item.path)
        return paths

    def action_stage_all(self) -> None:
        paths = self._paths(staged=False)
        if not paths:
            self.set_status("Nothing to stage.")
            return
        self.submit(OperationRequest(OperationKind.STAGE_ALL, options={"paths": tuple(paths)}))

    def action_unstage_all(self) -> None:
        paths = self._paths(staged=True)
        if not paths:
            self.set_status("Nothing to unstage.")
            return
        self.submit(OperationRequest(OperationKind.UNSTAGE_ALL, options={"paths": tuple(paths)}))

    def action_commit(self) -> None:
        if not self.cache.snapshot.has_staged:
            self.set_status("Nothing staged to commit.", error=True)
            return
        self.open_overlay(CommitMessageInput())

    def action_commit_editor(self) -> None:
        if not self.cache.snapshot.has_staged:
            self.set_status("Nothing staged to commit.", error=True)
            return
        if self.editor is None:
            self.set_status("No external editor available.", error=True)
            return
        # The editor owns the terminal until it returns; the loop waits for it.
        edited = self.editor(COMMIT_TEMPLATE)
        if edited is None:
            self.set_status("Commit cancelled.")
            return
        message = strip_comments(edited)
        if not message:
            self.set_status("Commit message cannot be empty.", error=True)
            return
        self._submit_commit(message)

    def action_show_diff(self) -> None:
        item = self.files.selected()
        if item is None:
            self.set_status("Working tree clean.")
            return
        self.submit(
            OperationRequest(
                OperationKind.SHOW_DIFF,
                item.path,
                options={
                    "staged": item.staged,
                    "untracked": item.status is FileStatus.UNTRACKED,
                },
                continuation=Continuation("show_diff"),
            )
        )

    def action_push(self) -> None:
        head = self.cache.head
        if head is None:
            self.reject("Cannot push a detached HEAD.")
            return
        self.submit(OperationRequest(OperationKind.PUSH, head))

    def submit_commit(self, overlay: Overlay, values: Mapping[str, Any]) -> None:
        self._submit_commit(values["message"])

    def _submit_commit(self, message: str) -> None:
        self.submit(
            OperationRequest(
                OperationKind.COMMIT,
                options={"message": message},
                continuation=Continuation("commit"),
            )
        )

    # Log pane

    def action_show_commit(self) -> None:
        item = self.log.selected()
        if item is None:
            self.set_status("No commit selected.")
            return
        self.submit(
            OperationRequest(
                OperationKind.SHOW_COMMIT, item.hash, continuation=Continuation("show_commit")
            )
        )

    def action_checkout_commit(self) -> None:
        item = self.log.selected()
        if item is None:
            self.set_status("No commit selected.")
            return
        self.submit(
            OperationRequest(
                OperationKind.CHECKOUT_COMMIT,
                item.hash,
                continuation=Continuation("checkout_commit"),
            )
        )

    def action_revert(self) -> None:
        item = self.log.selected()
        if item is None:
            self.set_status("No commit selected.")
            return
        self.submit(
            OperationRequest(
                OperationKind.REVERT, item.hash, options={"parent_count": item.parent_count}
            )
        )

    def action_filter(self) -> None:
        self.log.begin_filter()
        self.open_overlay(FuzzyFindInput())

    def changed_filter_done(self, overlay: Overlay, outcome: Outcome) -> None:
        if outcome.kind is OutcomeKind.NAVIGATE:
            count = len(self.log.items())
            if count:
                self.log.select_index((self.log.cursor() + outcome.values["delta"]) % count)
            return
        self.log.set_query(outcome.values["query"])

    def submit_filter_done(self, overlay: Overlay, values: Mapping[str, Any]) -> None:
        self.log.end_filter()

    def cancel_filter_done(self, overlay: Overlay) -> None:
        self.log.end_filter()

    # Detail pane

    def action_half_page_down(self) -> None:
        self.detail.half_page(1)

    def action_half_page_up(self) -> None:
        self.detail.half_page(-1)

    # Remotes pane

    def action_add_remote(self) -> None:
        self.open_overlay(AddRemoteInput())

    def action_remove_remote(self) -> None:
        item = self.remotes.selected()
        if item is None:
            self.set_status("No remote selected.")
            return
        self.open_overlay(ConfirmPrompt(f"Remove remote {item.name}?", "remove_remote", {"remote": item.name}))

    def submit_add_remote(self, overlay: Overlay, values: Mapping[str, Any]) -> None:
        self.submit(
            OperationRequest(
                OperationKind.ADD_REMOTE,
                values["name"],
                options={"url": values["url"]},
                continuation=Continuation("select_remote", {"name": values["name"]}),
            )
        )

    def submit_remove_remote(self, overlay: Overlay, values: Mapping[str, Any]) -> None:
        self.submit(OperationRequest(OperationKind.REMOVE_REMOTE, overlay.context["remote"]))


def help_lines() -> list[str]:
    """Key reference shown in the Detail pane until a diff or commit is opened."""
    lines = [
        "1-5  focus Branches / Files / Log / Remotes / Detail",
        "j/k  move down / up",
        "Esc  close popup, or quit",
        "",
    ]
    for pane in (BranchesPane, FilesPane, LogPane, RemotesPane, DetailPane):
        lines.append(f"{pane.pane_id.title}:")
        for key, template in pane.BINDINGS.items():
            lines.append(f"  {key:<6} {template.description}")
        lines.append("")
    return lines
