from __future__ import annotations

import pytest

from gitbuddy.models import PaneId
from gitbuddy.overlays import OverlayKind
from gitbuddy.panes import BranchesPane, FilesPane
from gitbuddy.router import (
    INITIAL_STATE,
    Action,
    ActionKind,
    FocusState,
    InvariantError,
    route,
    transition,
    with_overlay,
)


def test_initial_focus_is_branches() -> None:
    assert INITIAL_STATE.pane is PaneId.BRANCHES
    assert not INITIAL_STATE.overlay_active


@pytest.mark.parametrize("key,pane", [("1", PaneId.BRANCHES), ("3", PaneId.LOG), ("5", PaneId.DETAIL)])
def test_digits_focus_panes(key: str, pane: PaneId) -> None:
    action = route(INITIAL_STATE, key, BranchesPane.BINDINGS)
    assert action == Action(ActionKind.FOCUS, pane=pane)
    assert transition(INITIAL_STATE, action).pane is pane


def test_navigation_and_quit() -> None:
    assert route(INITIAL_STATE, "j", {}).delta == 1
    assert route(INITIAL_STATE, "down", {}).delta == 1
    assert route(INITIAL_STATE, "k", {}).delta == -1
    assert route(INITIAL_STATE, "escape", {}).kind is ActionKind.QUIT


def test_pane_binding_uses_focused_table() -> None:
    state = FocusState(PaneId.FILES)
    action = route(state, "s", FilesPane.BINDINGS)
    assert action.kind is ActionKind.PANE
    assert action.name == "stage"
    assert route(state, "x", FilesPane.BINDINGS).kind is ActionKind.NOOP


def test_overlay_captures_every_key() -> None:
    state = with_overlay(INITIAL_STATE, OverlayKind.NEW_BRANCH)
    for key in ("c", "2", "j", "escape", "enter"):
        action = route(state, key, BranchesPane.BINDINGS)
        assert action == Action(ActionKind.OVERLAY_KEY, key=key)


def test_transition_keeps_state_for_non_focus_actions() -> None:
    state = FocusState(PaneId.LOG)
    assert transition(state, Action(ActionKind.MOVE, delta=1)) == state
    assert transition(state, Action(ActionKind.QUIT)) == state


def test_corrupted_focus_is_fatal() -> None:
    broken = FocusState(pane=None)  # type: ignore[arg-type]
    with pytest.raises(InvariantError):
        route(broken, "j", {})
