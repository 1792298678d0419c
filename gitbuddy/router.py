"""Focus routing: which pane or overlay a key belongs to."""

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum, auto

from gitbuddy.models import PaneId
from gitbuddy.overlays import OverlayKind
from gitbuddy.panes import ActionTemplate

PANE_KEYS = {str(pane.value): pane for pane in PaneId}
MOVE_KEYS = {"j": 1, "down": 1, "k": -1, "up": -1}


class InvariantError(RuntimeError):
    """Internal state is corrupted; the application cannot continue."""


class ActionKind(Enum):
    NOOP = auto()
    QUIT = auto()
    FOCUS = auto()
    MOVE = auto()
    OVERLAY_KEY = auto()
    PANE = auto()


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    pane: PaneId | None = None
    delta: int = 0
    key: str | None = None
    name: str | None = None


NOOP = Action(ActionKind.NOOP)


@dataclass(frozen=True)
class FocusState:
    """Focused pane times optional overlay on top."""

    pane: PaneId
    overlay: OverlayKind | None = None

    @property
    def overlay_active(self) -> bool:
        return self.overlay is not None


INITIAL_STATE = FocusState(PaneId.BRANCHES)


def check(state: FocusState) -> None:
    if not isinstance(state.pane, PaneId):
        raise InvariantError(f"no pane has focus: {state!r}")


def route(state: FocusState, key: str, bindings: Mapping[str, ActionTemplate]) -> Action:
    """Translate a key into an action for ``state``.

    ``bindings`` is the focused pane's binding table. While an overlay is up
    every key goes to it and pane bindings are never consulted.
    """
    check(state)
    if state.overlay is not None:
        return Action(ActionKind.OVERLAY_KEY, key=key)
    if key == "escape":
        return Action(ActionKind.QUIT)
    if key in PANE_KEYS:
        return Action(ActionKind.FOCUS, pane=PANE_KEYS[key])
    if key in MOVE_KEYS:
        return Action(ActionKind.MOVE, delta=MOVE_KEYS[key])
    template = bindings.get(key)
    if template is None:
        return NOOP
    return Action(ActionKind.PANE, key=key, name=template.name)


def transition(state: FocusState, action: Action) -> FocusState:
    """Focus state after ``action``; only focus changes move it."""
    check(state)
    if action.kind is ActionKind.FOCUS and action.pane is not None:
        return replace(state, pane=action.pane)
    return state


def with_overlay(state: FocusState, overlay: OverlayKind | None) -> FocusState:
    return replace(state, overlay=overlay)
