"""Selection prompt: one radio option per candidate plus Confirm / More."""

from __future__ import annotations

from rich.markup import escape
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Markdown, RadioButton, RadioSet, Static

from menuchat.tui.messages import MoreRequested, SelectionConfirmed


def candidate_label(candidate: dict) -> str:
    """One-line label: title, then cooking time and ingredients when known."""
    if not isinstance(candidate, dict):
        return str(candidate)
    parts = [candidate.get("title") or "(untitled)"]
    if candidate.get("cooking_time"):
        parts.append(f"({candidate['cooking_time']})")
    ingredients = candidate.get("ingredients") or []
    if ingredients:
        parts.append("- " + ", ".join(ingredients[:5]))
    return " ".join(parts)


class SelectionPanel(Vertical):
    """A proposal round. Only the latest panel accepts input."""

    DEFAULT_CSS = """
    SelectionPanel {
        height: auto;
        border: round $accent;
        padding: 0 1;
        margin: 0 0 1 0;
    }
    SelectionPanel.read-only {
        border: round $panel;
        opacity: 70%;
    }
    SelectionPanel RadioSet {
        width: 100%;
    }
    SelectionPanel Horizontal {
        height: auto;
        margin-top: 1;
    }
    SelectionPanel Button {
        margin-right: 2;
    }
    """

    def __init__(self, entry: dict, index: int, group: str, round_number: int, latest: bool) -> None:
        super().__init__()
        self.entry = entry
        self.index = index
        self.group = group
        self.border_title = f"{entry.get('stage') or 'main'} proposals, round {round_number}"
        self._latest = latest
        if not latest:
            self.add_class("read-only")

    def compose(self):
        content = self.entry.get("content", "")
        if content:
            yield Markdown(content, classes="chatbox-md")
        used = self.entry.get("used_ingredients") or []
        if used:
            yield Static(f"Uses: {escape(', '.join(used))}", classes="sel-used")
        with RadioSet(id=f"select-{self.group}", disabled=not self._latest):
            for candidate in self.entry.get("candidates") or []:
                yield RadioButton(escape(candidate_label(candidate)))
        with Horizontal():
            yield Button("Confirm", classes="sel-confirm", variant="primary", disabled=not self._latest)
            yield Button("More options", classes="sel-more", disabled=not self._latest)

    @property
    def is_latest(self) -> bool:
        return self._latest

    def set_latest(self, latest: bool) -> None:
        """Enable or freeze the controls. Earlier rounds stay visible but read-only."""
        if latest == self._latest:
            return
        self._latest = latest
        self.set_class(not latest, "read-only")
        if not self.is_mounted:
            return
        self.query_one(RadioSet).disabled = not latest
        for button in self.query(Button):
            button.disabled = not latest

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        if not self._latest:
            return
        if event.button.has_class("sel-more"):
            self.post_message(MoreRequested(self.index))
            return
        pressed = self.query_one(RadioSet).pressed_index
        if pressed < 0:
            self.notify("Choose an option first.", severity="warning")
            return
        self.post_message(SelectionConfirmed(self.index, pressed + 1))
