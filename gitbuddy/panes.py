"""Pane controllers: scrollable lists bound to slices of the state cache."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from gitbuddy import fuzzy
from gitbuddy.models import (
    BranchItem,
    BranchScope,
    CommitItem,
    FileItem,
    PaneId,
    RemoteItem,
)

T = TypeVar("T")

DEFAULT_HEIGHT = 20


@dataclass(frozen=True)
class ActionTemplate:
    """A key binding: the action name the application dispatches on, plus help text."""

    name: str
    description: str
    show: bool = True


@dataclass
class ListState(Generic[T]):
    items: list[T] = field(default_factory=list)
    cursor: int = -1
    scroll: int = 0


def item_key(item: Any) -> Any:
    return getattr(item, "key", item)


class Pane(Generic[T]):
    """Base list pane. The cursor is -1 on an empty list and clamped otherwise."""

    pane_id: PaneId
    BINDINGS: dict[str, ActionTemplate] = {}

    def __init__(self) -> None:
        self._state: ListState[T] = ListState()
        self.height = DEFAULT_HEIGHT
        self.focused = False

    @property
    def title(self) -> str:
        return self.pane_id.title

    def items(self) -> Sequence[T]:
        return self._state.items

    def cursor(self) -> int:
        return self._state.cursor

    @property
    def scroll(self) -> int:
        return self._state.scroll

    def bindings(self) -> Mapping[str, ActionTemplate]:
        return self.BINDINGS

    def selected(self) -> T | None:
        items = self.items()
        index = self.cursor()
        if 0 <= index < len(items):
            return items[index]
        return None

    def view_state(self) -> tuple[int, int, tuple[Any, ...]]:
        """Cursor, scroll and item identities, for comparing pane state."""
        return self.cursor(), self.scroll, tuple(item_key(item) for item in self.items())

    def move(self, delta: int) -> None:
        self.select_index(self.cursor() + delta)

    def half_page(self, direction: int) -> None:
        self.move(direction * max(1, self.height // 2))

    def select_index(self, index: int) -> None:
        state = self._state
        count = len(self.items())
        if count == 0:
            state.cursor = -1
            state.scroll = 0
            return
        state.cursor = max(0, min(index, count - 1))
        self._ensure_visible()

    def select_key(self, key: Any) -> bool:
        for index, item in enumerate(self.items()):
            if item_key(item) == key:
                self.select_index(index)
                return True
        return False

    def set_height(self, height: int) -> None:
        self.height = max(1, height)
        self._ensure_visible()

    def set_items(self, items: Sequence[T]) -> None:
        """Replace the list, keeping the cursor on the same item when it survives."""
        self._replace(self._state, list(items))

    def _replace(self, state: ListState[T], items: list[T]) -> None:
        previous = None
        if 0 <= state.cursor < len(state.items):
            previous = item_key(state.items[state.cursor])
        old_cursor = state.cursor
        state.items = items
        if not items:
            state.cursor = -1
            state.scroll = 0
            return
        for index, item in enumerate(items):
            if previous is not None and item_key(item) == previous:
                state.cursor = index
                break
        else:
            state.cursor = max(0, min(old_cursor, len(items) - 1))
        if state is self._state:
            self._ensure_visible()

    def _ensure_visible(self) -> None:
        state = self._state
        count = len(self.items())
        if state.cursor < 0:
            state.scroll = 0
            return
        if state.cursor < state.scroll:
            state.scroll = state.cursor
        elif state.cursor >= state.scroll + self.height:
            state.scroll = state.cursor - self.height + 1
        state.scroll = max(0, min(state.scroll, max(0, count - self.height)))

    def visible(self) -> list[tuple[int, T]]:
        start = self.scroll
        items = self.items()
        return [(index, items[index]) for index in range(start, min(len(items), start + self.height))]

    def on_focus_gained(self) -> None:
        self.focused = True

    def on_focus_lost(self) -> None:
        self.focused = False


class BranchesPane(Pane[BranchItem]):
    """Local and remote branches, one sub-tab each with its own cursor."""

    pane_id = PaneId.BRANCHES
    TABS = (BranchScope.LOCAL, BranchScope.REMOTE)
    BINDINGS = {
        "c": ActionTemplate("checkout", "Checkout"),
        "d": ActionTemplate("delete_branch", "Delete"),
        "n": ActionTemplate("new_branch", "New"),
        "m": ActionTemplate("merge", "Merge"),
        "f": ActionTemplate("fetch", "Fetch"),
        "p": ActionTemplate("pull", "Pull"),
        "P": ActionTemplate("pull_selected", "Pull selected"),
        "h": ActionTemplate("prev_tab", "Prev tab", show=False),
        "l": ActionTemplate("next_tab", "Next tab", show=False),
    }

    def __init__(self) -> None:
        super().__init__()
        self._tabs: dict[BranchScope, ListState[BranchItem]] = {
            scope: ListState() for scope in self.TABS
        }
        self.tab = BranchScope.LOCAL
        self._state = self._tabs[self.tab]

    @property
    def title(self) -> str:
        return f"Branches [{self.tab.value}]"

    def cycle_tab(self, delta: int) -> None:
        position = self.TABS.index(self.tab)
        self.tab = self.TABS[(position + delta) % len(self.TABS)]
        self._state = self._tabs[self.tab]
        self._ensure_visible()

    def set_items(self, items: Sequence[BranchItem]) -> None:
        for scope, state in self._tabs.items():
            self._replace(state, [item for item in items if item.scope is scope])
        self._ensure_visible()

    def select_head(self) -> bool:
        for index, item in enumerate(self._tabs[BranchScope.LOCAL].items):
            if item.is_head:
                if self.tab is not BranchScope.LOCAL:
                    self.cycle_tab(1)
                self.select_index(index)
                return True
        return False


class FilesPane(Pane[FileItem]):
    pane_id = PaneId.FILES
    BINDINGS = {
        "s": ActionTemplate("stage", "Stage"),
        "u": ActionTemplate("unstage", "Unstage"),
        "a": ActionTemplate("stage_all", "Stage all"),
        "A": ActionTemplate("unstage_all", "Unstage all"),
        "c": ActionTemplate("commit", "Commit"),
        "C": ActionTemplate("commit_editor", "Commit in editor"),
        "p": ActionTemplate("push", "Push"),
        "enter": ActionTemplate("show_diff", "Diff"),
    }

    def __init__(self) -> None:
        super().__init__()
        self.flagged: set[str] = set()

    def flag_conflicts(self) -> None:
        self.flagged = {item.path for item in self.items() if item.is_conflicted}
        for index, item in enumerate(self.items()):
            if item.is_conflicted:
                self.select_index(index)
                break

    def set_items(self, items: Sequence[FileItem]) -> None:
        super().set_items(items)
        conflicted = {item.path for item in items if item.is_conflicted}
        self.flagged &= conflicted


class LogPane(Pane[CommitItem]):
    """Commit history with a fuzzy filter over commit summaries."""

    pane_id = PaneId.LOG
    BINDINGS = {
        "enter": ActionTemplate("show_commit", "Details"),
        "c": ActionTemplate("checkout_commit", "Checkout"),
        "r": ActionTemplate("revert", "Revert"),
        "/": ActionTemplate("filter", "Find"),
    }

    def __init__(self) -> None:
        super().__init__()
        self._all: list[CommitItem] = []
        self._filtering = False
        self._saved: tuple[int, int] = (-1, 0)
        self.query = ""
        self.highlight_query = ""
        self._matches: list[fuzzy.FuzzyMatch] = []

    @property
    def filtering(self) -> bool:
        return self._filtering

    @property
    def title(self) -> str:
        if self._filtering:
            return f"Log [/{self.query}] {len(self.items())}/{len(self._all)}"
        return "Log"

    def set_items(self, items: Sequence[CommitItem]) -> None:
        self._all = list(items)
        if self._filtering:
            self._apply_query(keep_selection=True)
        else:
            super().set_items(self._all)

    def highlights(self, item_index: int) -> tuple[int, ...]:
        """Matched character positions of the visible item at ``item_index``."""
        if self._filtering and 0 <= item_index < len(self._matches):
            return self._matches[item_index].positions
        if self.highlight_query and 0 <= item_index < len(self.items()):
            found = fuzzy.match(self.highlight_query, self.items()[item_index].summary)
            return found[1] if found else ()
        return ()

    def begin_filter(self) -> None:
        self._filtering = True
        self._saved = (self._state.cursor, self._state.scroll)
        self.query = ""
        self._matches = fuzzy.filter_items("", [c.summary for c in self._all])

    def set_query(self, query: str) -> None:
        self.query = query
        if not query:
            self._matches = fuzzy.filter_items("", [c.summary for c in self._all])
            self._state.items = list(self._all)
            self._state.cursor, self._state.scroll = self._saved
            self.select_index(self._state.cursor)
            return
        self._apply_query(keep_selection=False)

    def _apply_query(self, keep_selection: bool) -> None:
        previous = self.selected()
        self._matches = fuzzy.filter_items(self.query, [c.summary for c in self._all])
        filtered = [self._all[found.index] for found in self._matches]
        self._state.items = filtered
        self._state.scroll = 0
        index = 0
        if keep_selection and previous is not None:
            for position, item in enumerate(filtered):
                if item.hash == previous.hash:
                    index = position
                    break
        self.select_index(index)

    def end_filter(self) -> None:
        """Back to the full list, keeping the selected commit when there is one."""
        selected = self.selected()
        saved_cursor, saved_scroll = self._saved
        self._filtering = False
        self.highlight_query = self.query
        self._matches = []
        self._state.items = list(self._all)
        target = 0
        if selected is not None:
            for index, item in enumerate(self._all):
                if item.hash == selected.hash:
                    target = index
                    break
        if not self.query and target == saved_cursor:
            self._state.cursor, self._state.scroll = saved_cursor, saved_scroll
        else:
            self.select_index(target)
        self.query = ""

    def on_focus_lost(self) -> None:
        super().on_focus_lost()
        self.highlight_query = ""


class RemotesPane(Pane[RemoteItem]):
    pane_id = PaneId.REMOTES
    BINDINGS = {
        "a": ActionTemplate("add_remote", "Add"),
        "d": ActionTemplate("remove_remote", "Remove"),
    }


class DetailPane(Pane[str]):
    """Read-only scrollable text: a diff, commit details or key help."""

    pane_id = PaneId.DETAIL
    BINDINGS = {
        "ctrl+d": ActionTemplate("half_page_down", "Half page down"),
        "ctrl+u": ActionTemplate("half_page_up", "Half page up"),
    }

    def __init__(self) -> None:
        super().__init__()
        self.heading = "Detail"

    @property
    def title(self) -> str:
        return self.heading

    def set_content(self, heading: str, lines: Sequence[str]) -> None:
        self.heading = heading
        self._state = ListState(items=list(lines))
        self.select_index(0)
