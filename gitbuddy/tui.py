"""Textual front-end for gitbuddy."""

import logging
import time
from collections.abc import Callable

import click
from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Input, Static

from gitbuddy.app import Application
from gitbuddy.models import BranchItem, CommitItem, FileItem, PaneId, RemoteItem
from gitbuddy.overlays import (
    AddRemoteInput,
    ConfirmPrompt,
    ErrorPopup,
    FuzzyFindInput,
    Overlay,
    TextInput,
)
from gitbuddy.panes import Pane
from gitbuddy.router import InvariantError

logger = logging.getLogger(__name__)

SPINNER = "|/-\\"
GLOBAL_BAR = "1-5: panes  |  j/k: move  |  Esc: quit"
DRAIN_INTERVAL = 0.1


CSS = """
Screen {
    layout: vertical;
}

#command_bar {
    padding: 0 1;
    height: 1;
    color: $text-muted;
}

#status_line, #summary_line {
    padding: 0 1;
    height: 1;
}

#main {
    height: 1fr;
}

#left, #right {
    width: 1fr;
}

.pane {
    height: 1fr;
    border: round $secondary;
    padding: 0 1;
}

.pane.focused {
    border: round $primary;
}

#pane-3 {
    height: 2fr;
}

.modal {
    align: center middle;
}

.modal-body {
    width: 72;
    max-width: 90;
    height: auto;
    border: thick $primary;
    background: $surface;
    padding: 1 2;
}

.modal-title {
    margin-bottom: 1;
    text-style: bold;
}

.modal-hint {
    margin-top: 1;
    color: $text-muted;
}

.modal-input {
    margin-top: 1;
}

.modal-input.active {
    border: tall $accent;
}
"""


def relative_time(ts: int) -> str:
    """Format a timestamp as relative time."""
    if ts <= 0:
        return "unknown"
    delta = int(time.time()) - ts
    if delta < 60:
        return f"{delta}s ago"
    if delta < 3600:
        return f"{delta // 60}m ago"
    if delta < 86400:
        return f"{delta // 3600}h ago"
    if delta < 604800:
        return f"{delta // 86400}d ago"
    if delta < 2629800:
        return f"{delta // 604800}w ago"
    return f"{delta // 2629800}mo ago"


def normalize_key(event: events.Key) -> str:
    """Printable keys by their character ("P", "/"), the rest by name ("enter")."""
    if event.is_printable and event.character:
        return event.character
    return event.key


def format_branch(item: BranchItem) -> Text:
    marker = "* " if item.is_head else "  "
    text = Text(marker + item.name, style="green" if item.is_head else "")
    if item.ahead or item.behind:
        text.append(f"  {item.behind}↓ {item.ahead}↑", style="cyan")
    if item.upstream:
        text.append(f"  {item.upstream}", style="dim")
    return text


def format_file(item: FileItem, flagged: bool) -> Text:
    if item.is_conflicted:
        style = "bold red"
    elif item.staged:
        style = "green"
    else:
        style = "red"
    text = Text(f"{item.status.value} ", style=style)
    text.append(item.path)
    if flagged:
        text.append("  conflict", style="bold red")
    return text


def format_commit(item: CommitItem, highlights: tuple[int, ...]) -> Text:
    text = Text(item.short_hash, style="yellow")
    text.append(" ")
    summary = Text(item.summary)
    for position in highlights:
        summary.stylize("bold underline", position, position + 1)
    text.append_text(summary)
    text.append(f"  {item.author}, {relative_time(item.timestamp)}", style="dim")
    return text


def format_remote(item: RemoteItem) -> Text:
    text = Text(item.name, style="bold")
    text.append(f"  {item.url}", style="dim")
    return text


def format_detail_line(line: str) -> Text:
    if line.startswith(("+++", "---")):
        return Text(line, style="bold")
    if line.startswith("+"):
        return Text(line, style="green")
    if line.startswith("-"):
        return Text(line, style="red")
    if line.startswith("@@"):
        return Text(line, style="cyan")
    return Text(line)


def overlay_fields(overlay: Overlay) -> list[tuple[str, str, bool]]:
    """Text fields of ``overlay`` as (name, value, has_cursor)."""
    if isinstance(overlay, AddRemoteInput):
        return [
            (name, overlay.value(name), index == overlay.focus)
            for index, name in enumerate(overlay.FIELDS)
        ]
    if isinstance(overlay, TextInput):
        return [(overlay.field_name, overlay.text, True)]
    return []


def overlay_hint(overlay: Overlay) -> str:
    if isinstance(overlay, AddRemoteInput):
        return "Tab: next field  Enter: add  Esc: cancel"
    if isinstance(overlay, FuzzyFindInput):
        return "Tab: next match  Enter/Esc: close"
    if isinstance(overlay, TextInput):
        return "Enter: submit  Esc: cancel"
    if isinstance(overlay, ConfirmPrompt):
        return overlay.hint
    if isinstance(overlay, ErrorPopup):
        return "Enter/Esc: dismiss"
    return "Esc: close"


def overlay_message(overlay: Overlay) -> Text:
    """Error text shown above the fields: a failed operation or a rejected value."""
    text = Text(style="red")
    if isinstance(overlay, ErrorPopup):
        text.append(overlay.message)
    if overlay.error:
        if text.plain:
            text.append("\n")
        text.append(overlay.error)
    return text


class FieldInput(Input):
    """Shows one overlay field. The core owns the text, so this never takes focus."""

    can_focus = False


class OverlayScreen(ModalScreen[None]):
    """Modal view of the core's top overlay. Keys go back to the core."""

    def __init__(self, overlay: Overlay, route_key: Callable[[str], None]) -> None:
        super().__init__()
        self.overlay = overlay
        self.route_key = route_key

    def compose(self) -> ComposeResult:
        with Vertical(classes="modal"):
            with Vertical(classes="modal-body"):
                yield Static(self.overlay.title, classes="modal-title")
                yield Static("", id="overlay_message")
                for name, _, _ in overlay_fields(self.overlay):
                    yield FieldInput(placeholder=name, classes="modal-input", id=f"field_{name}")
                yield Static(overlay_hint(self.overlay), classes="modal-hint")

    def on_mount(self) -> None:
        self.sync()

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.route_key(normalize_key(event))

    def sync(self) -> None:
        self.query_one("#overlay_message", Static).update(overlay_message(self.overlay))
        for name, value, active in overlay_fields(self.overlay):
            field = self.query_one(f"#field_{name}", FieldInput)
            field.value = value
            field.cursor_position = len(value)
            field.set_class(active, "active")


class TuiApp(App[str | None]):
    """Renders the interaction core and feeds it keys.

    Returns a fatal error message when the core hits a broken invariant.
    """

    CSS = CSS
    # Tab would otherwise move textual focus before reaching on_key.
    BINDINGS = [Binding("tab", "route_key('tab')", show=False, priority=True)]

    def __init__(self, core: Application) -> None:
        super().__init__()
        self.core = core
        self.core.editor = self._edit
        self._spinner_index = 0

    def compose(self) -> ComposeResult:
        yield Static("", id="command_bar")
        yield Static("", id="summary_line")
        yield Static("", id="status_line")
        with Horizontal(id="main"):
            with Vertical(id="left"):
                for pane_id in (PaneId.BRANCHES, PaneId.FILES, PaneId.REMOTES):
                    yield Static("", id=f"pane-{pane_id.value}", classes="pane")
            with Vertical(id="right"):
                for pane_id in (PaneId.LOG, PaneId.DETAIL):
                    yield Static("", id=f"pane-{pane_id.value}", classes="pane")

    def on_mount(self) -> None:
        self.core.start()
        self.set_interval(DRAIN_INTERVAL, self._tick)
        interval = self.core.settings.refresh_interval
        if interval > 0:
            self.set_interval(interval, self.core.tick)
        self._repaint()

    def on_unmount(self) -> None:
        self.core.shutdown()

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.action_route_key(normalize_key(event))

    def action_route_key(self, key: str) -> None:
        self.core.post_key(key)
        self._drain()

    def _tick(self) -> None:
        self._spinner_index += 1
        self._drain()

    def _drain(self) -> None:
        try:
            self.core.loop.run_pending()
        except InvariantError as exc:
            logger.exception("fatal: %s", exc)
            self.exit(str(exc))
            return
        if self.core.should_quit:
            self.exit(None)
            return
        self._repaint()

    def _edit(self, template: str) -> str | None:
        with self.suspend():
            try:
                return click.edit(template, extension=".gitcommit")
            except click.ClickException as exc:
                logger.warning("editor failed: %s", exc.format_message())
                self.notify(exc.format_message(), severity="error")
                return None

    def _command_bar(self) -> str:
        pane = self.core.focused_pane
        parts = [f"{key}: {template.description}" for key, template in pane.bindings().items() if template.show]
        return "  |  ".join([*parts, GLOBAL_BAR])

    def _repaint(self) -> None:
        # Pane widgets live on the base screen, under any overlay screen.
        main = self.screen_stack[0]
        main.query_one("#command_bar", Static).update(self._command_bar())
        main.query_one("#summary_line", Static).update(Text(self.core.summary(), style="bold"))
        status = self.core.status
        text = Text(status.text, style="red" if status.error else "") if status else Text("")
        main.query_one("#status_line", Static).update(text)
        for pane_id, pane in self.core.panes.items():
            widget = main.query_one(f"#pane-{pane_id.value}", Static)
            widget.set_class(pane_id is self.core.state.pane, "focused")
            # Border takes two rows.
            pane.set_height(max(1, widget.size.height - 2))
            widget.border_title = self._pane_title(pane_id, pane)
            widget.update(self._render_pane(pane_id, pane))
        self._sync_overlay()

    def _sync_overlay(self) -> None:
        overlay = self.core.overlay
        screen = self.screen if isinstance(self.screen, OverlayScreen) else None
        if screen is not None and screen.overlay is overlay:
            if screen.is_mounted:
                screen.sync()
            return
        if screen is not None:
            self.pop_screen()
        if overlay is not None:
            self.push_screen(OverlayScreen(overlay, self.action_route_key))

    def _pane_title(self, pane_id: PaneId, pane: Pane) -> str:
        title = f"[{pane_id.value}] {pane.title}"
        if self.core.busy(pane_id):
            title += f" {SPINNER[self._spinner_index % len(SPINNER)]}"
        return title

    def _render_pane(self, pane_id: PaneId, pane: Pane) -> Text:
        rows = pane.visible()
        if not rows:
            placeholder = "Working tree clean" if pane_id is PaneId.FILES else ""
            return Text(placeholder, style="dim")
        lines = Text()
        for position, (index, item) in enumerate(rows):
            if position:
                lines.append("\n")
            row = self._render_row(pane_id, index, item)
            if index == pane.cursor():
                row.stylize("reverse" if pane.focused else "bold")
            lines.append_text(row)
        return lines

    def _render_row(self, pane_id: PaneId, index: int, item: object) -> Text:
        if isinstance(item, BranchItem):
            return format_branch(item)
        if isinstance(item, FileItem):
            return format_file(item, item.path in self.core.files.flagged)
        if isinstance(item, CommitItem):
            return format_commit(item, self.core.log.highlights(index))
        if isinstance(item, RemoteItem):
            return format_remote(item)
        return format_detail_line(str(item))


def run_tui(core: Application) -> str | None:
    """Run the textual TUI application."""
    app = TuiApp(core)
    return app.run()
