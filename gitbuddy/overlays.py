"""Modal overlays that capture every key until confirmed or cancelled."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class OverlayKind(Enum):
    COMMIT_MESSAGE = auto()
    NEW_BRANCH = auto()
    ADD_REMOTE = auto()
    CONFIRM = auto()
    FUZZY_FIND = auto()
    ERROR = auto()


class OutcomeKind(Enum):
    IGNORED = auto()
    CHANGED = auto()
    NAVIGATE = auto()
    INVALID = auto()
    SUBMIT = auto()
    CANCEL = auto()


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    values: Mapping[str, Any] = field(default_factory=dict)
    message: str | None = None

    @property
    def closes(self) -> bool:
        return self.kind in (OutcomeKind.SUBMIT, OutcomeKind.CANCEL)


IGNORED = Outcome(OutcomeKind.IGNORED)
CANCELLED = Outcome(OutcomeKind.CANCEL)


class TextBuffer:
    """Single-line editable text; edits happen at the end of the line."""

    def __init__(self, text: str = "") -> None:
        self.text = text

    def handle_key(self, key: str) -> bool:
        if key == "backspace":
            if not self.text:
                return False
            self.text = self.text[:-1]
            return True
        if key == "space":
            key = " "
        if len(key) == 1 and key.isprintable():
            self.text += key
            return True
        return False


class Overlay:
    """Base overlay.

    ``action`` names what the application runs with the submitted values;
    ``context`` carries whatever that action needs besides them.
    """

    kind: OverlayKind

    def __init__(self, title: str, action: str, context: Mapping[str, Any] | None = None) -> None:
        self.title = title
        self.action = action
        self.context = dict(context or {})
        self.error: str | None = None

    def handle_key(self, key: str) -> Outcome:
        raise NotImplementedError

    def _invalid(self, message: str) -> Outcome:
        self.error = message
        return Outcome(OutcomeKind.INVALID, message=message)


class TextInput(Overlay):
    """One text field; submission requires non-blank text."""

    empty_message = "Value cannot be empty."
    field_name = "value"

    def __init__(self, title: str, action: str, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(title, action, context)
        self.buffer = TextBuffer()

    @property
    def text(self) -> str:
        return self.buffer.text

    def handle_key(self, key: str) -> Outcome:
        if key == "escape":
            return CANCELLED
        if key == "enter":
            value = self.buffer.text.strip()
            if not value:
                return self._invalid(self.empty_message)
            return Outcome(OutcomeKind.SUBMIT, {self.field_name: value})
        if self.buffer.handle_key(key):
            self.error = None
            return Outcome(OutcomeKind.CHANGED)
        return IGNORED


class CommitMessageInput(TextInput):
    kind = OverlayKind.COMMIT_MESSAGE
    empty_message = "Commit message cannot be empty."
    field_name = "message"

    def __init__(self, context: Mapping[str, Any] | None = None) -> None:
        super().__init__("Commit message", "commit", context)


class NewBranchInput(TextInput):
    kind = OverlayKind.NEW_BRANCH
    empty_message = "Branch name cannot be empty."
    field_name = "name"

    def __init__(self, context: Mapping[str, Any] | None = None) -> None:
        super().__init__("New branch from HEAD", "create_branch", context)


class AddRemoteInput(Overlay):
    """Two fields, name and URL; Tab moves between them."""

    kind = OverlayKind.ADD_REMOTE
    FIELDS = ("name", "url")

    def __init__(self, context: Mapping[str, Any] | None = None) -> None:
        super().__init__("Add remote", "add_remote", context)
        self.buffers = [TextBuffer() for _ in self.FIELDS]
        self.focus = 0

    @property
    def focused_field(self) -> str:
        return self.FIELDS[self.focus]

    def value(self, name: str) -> str:
        return self.buffers[self.FIELDS.index(name)].text

    def handle_key(self, key: str) -> Outcome:
        if key == "escape":
            return CANCELLED
        if key == "tab":
            self.focus = (self.focus + 1) % len(self.FIELDS)
            return Outcome(OutcomeKind.CHANGED)
        if key == "enter":
            for index, name in enumerate(self.FIELDS):
                if not self.buffers[index].text.strip():
                    self.focus = index
                    return self._invalid(f"Remote {name} is required.")
            return Outcome(
                OutcomeKind.SUBMIT,
                {name: self.buffers[i].text.strip() for i, name in enumerate(self.FIELDS)},
            )
        if self.buffers[self.focus].handle_key(key):
            self.error = None
            return Outcome(OutcomeKind.CHANGED)
        return IGNORED


class ConfirmPrompt(Overlay):
    """Question with single-key answers. ``n`` and Esc always cancel."""

    kind = OverlayKind.CONFIRM

    def __init__(
        self,
        title: str,
        action: str,
        context: Mapping[str, Any] | None = None,
        choices: Mapping[str, tuple[str, str]] | None = None,
    ) -> None:
        super().__init__(title, action, context)
        # key -> (choice value, label)
        self.choices = dict(choices or {"y": ("yes", "Yes")})

    @property
    def hint(self) -> str:
        answers = [f"{key}: {label}" for key, (_, label) in self.choices.items()]
        return "  ".join([*answers, "n/Esc: Cancel"])

    def handle_key(self, key: str) -> Outcome:
        if key in ("escape", "n"):
            return CANCELLED
        if key == "enter":
            key = next(iter(self.choices))
        if key in self.choices:
            return Outcome(OutcomeKind.SUBMIT, {"choice": self.choices[key][0]})
        return IGNORED


class FuzzyFindInput(TextInput):
    """Live filter query; Tab steps through the matches."""

    kind = OverlayKind.FUZZY_FIND
    field_name = "query"

    def __init__(self, context: Mapping[str, Any] | None = None) -> None:
        super().__init__("Find commit", "filter_done", context)

    def handle_key(self, key: str) -> Outcome:
        if key == "escape":
            return CANCELLED
        if key == "enter":
            return Outcome(OutcomeKind.SUBMIT, {"query": self.buffer.text})
        if key == "tab":
            return Outcome(OutcomeKind.NAVIGATE, {"delta": 1})
        if self.buffer.handle_key(key):
            return Outcome(OutcomeKind.CHANGED, {"query": self.buffer.text})
        return IGNORED


class ErrorPopup(Overlay):
    """Read-only message for a failed operation."""

    kind = OverlayKind.ERROR

    def __init__(self, title: str, message: str) -> None:
        super().__init__(title, "dismiss")
        self.message = message

    def handle_key(self, key: str) -> Outcome:
        if key in ("escape", "enter"):
            return CANCELLED
        return IGNORED


class OverlayStack:
    """Overlays on top of the panes. Only the top one receives keys."""

    def __init__(self) -> None:
        self._stack: list[Overlay] = []

    def __len__(self) -> int:
        return len(self._stack)

    def __bool__(self) -> bool:
        return bool(self._stack)

    @property
    def top(self) -> Overlay | None:
        return self._stack[-1] if self._stack else None

    def push(self, overlay: Overlay) -> None:
        self._stack.append(overlay)

    def pop(self) -> Overlay | None:
        return self._stack.pop() if self._stack else None

    def remove(self, overlay: Overlay) -> None:
        if overlay in self._stack:
            self._stack.remove(overlay)

    def clear(self) -> None:
        self._stack.clear()
