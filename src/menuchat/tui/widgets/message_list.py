"""Conversation history display widgets."""

from __future__ import annotations

from rich.markup import escape
from textual.containers import Vertical, VerticalScroll
from textual.widget import Widget
from textual.widgets import Markdown, ProgressBar, Static

from menuchat.conversation import ENTRY_LABELS
from menuchat.rounds import is_latest, is_selection_prompt, round_for, selection_group
from menuchat.tui.widgets.selection import SelectionPanel


class Chatbox(Vertical):
    """Single resolved entry with bordered container and markdown content."""

    DEFAULT_CSS = """
    Chatbox {
        height: auto;
    }
    """

    def __init__(self, entry: dict) -> None:
        kind = entry.get("kind", "assistant")
        super().__init__(classes=f"chatbox-{kind}")
        self.border_title = ENTRY_LABELS.get(kind, kind)
        self._content = entry.get("content", "")

    def compose(self):
        yield Markdown(self._content, classes="chatbox-md")


class StreamingChatbox(Vertical):
    """Pending placeholder: status line plus a progress bar once totals are known."""

    DEFAULT_CSS = """
    StreamingChatbox {
        height: auto;
    }
    StreamingChatbox ProgressBar {
        display: none;
    }
    StreamingChatbox.has-progress ProgressBar {
        display: block;
    }
    """

    def __init__(self, entry: dict) -> None:
        super().__init__(classes="chatbox-streaming")
        self.border_title = ENTRY_LABELS["streaming"]
        self.session_id = entry.get("session_id")
        self._status = Static(escape(entry.get("status") or "Waiting for the assistant..."),
                              classes="chatbox-stream")
        self._bar = ProgressBar(total=None, show_eta=False)
        self._pending = entry

    def compose(self):
        yield self._status
        yield self._bar

    def on_mount(self) -> None:
        self.update_entry(self._pending)

    def update_entry(self, entry: dict) -> None:
        self._pending = entry
        if not self.is_mounted:
            return
        progress = entry.get("progress")
        status = entry.get("status") or (progress.current_task if progress else "")
        self._status.update(escape(status or "Waiting for the assistant..."))
        if progress is not None and progress.total > 0:
            self.add_class("has-progress")
            self._bar.update(total=progress.total, progress=progress.completed)


def make_widget(history: list[dict], index: int) -> Widget:
    """Factory: choose the widget for history[index]."""
    entry = history[index]
    if entry.get("kind") == "streaming":
        return StreamingChatbox(entry)
    if is_selection_prompt(entry):
        return SelectionPanel(
            entry,
            index,
            group=selection_group(history, index),
            round_number=round_for(history, index),
            latest=is_latest(history, index),
        )
    return Chatbox(entry)


class MessageList(VerticalScroll):
    """Scrollable list of history entries, one widget per index."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._widgets: list[Widget] = []

    @property
    def entry_count(self) -> int:
        return len(self._widgets)

    def widget_at(self, index: int) -> Widget:
        return self._widgets[index]

    def load_history(self, history: list[dict]) -> None:
        self.remove_children()
        self._widgets = []
        if not history:
            self.mount(Static("No messages yet.", classes="msg-empty"))
            return
        for index in range(len(history)):
            widget = make_widget(history, index)
            self._widgets.append(widget)
            self.mount(widget)
        self.call_after_refresh(self.scroll_end, animate=False)

    def append_entry(self, index: int, history: list[dict]) -> None:
        """Mount the widget for a newly appended entry.

        Notifications can arrive after the history was cleared; an index
        that does not extend the list is ignored.
        """
        if index != len(self._widgets) or index >= len(history):
            return
        should_scroll = self._is_near_bottom()
        for e in self.query(".msg-empty"):
            e.remove()
        widget = make_widget(history, index)
        self._widgets.append(widget)
        self.mount(widget)
        self.refresh_prompts(history)
        self._maybe_scroll(should_scroll)

    def update_entry(self, index: int, entry: dict, history: list[dict], resolved: bool) -> None:
        """Apply a placeholder update, or swap the placeholder for its resolved widget."""
        if index >= len(self._widgets) or index >= len(history):
            return
        old = self._widgets[index]
        if not resolved and isinstance(old, StreamingChatbox):
            old.update_entry(entry)
            return
        should_scroll = self._is_near_bottom()
        widget = make_widget(history, index)
        self._widgets[index] = widget
        self.mount(widget, after=old)
        old.remove()
        self.refresh_prompts(history)
        self._maybe_scroll(should_scroll)

    def refresh_prompts(self, history: list[dict]) -> None:
        """Only the most recent selection prompt stays interactive."""
        for index, widget in enumerate(self._widgets):
            if isinstance(widget, SelectionPanel) and index < len(history):
                widget.set_latest(is_latest(history, index))

    def _is_near_bottom(self, threshold: int = 2) -> bool:
        if self.max_scroll_y == 0:
            return True
        return (self.max_scroll_y - self.scroll_y) <= threshold

    def _maybe_scroll(self, should_scroll: bool) -> None:
        if should_scroll:
            # Defer until after layout so the scroll target includes the new widget
            self.call_after_refresh(self.scroll_end, animate=False)
