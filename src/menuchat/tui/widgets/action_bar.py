"""Action bar for dialogue states that change how the next input is used."""

from __future__ import annotations

from rich.markup import escape
from textual.widgets import Static


class ActionBar(Static):
    """Shown while a confirmation is pending; hidden otherwise."""

    DEFAULT_CSS = """
    ActionBar {
        display: none;
        height: auto;
        max-height: 3;
        background: $surface;
        border-top: solid $warning;
        padding: 0 1;
    }
    ActionBar.visible {
        display: block;
    }
    """

    def show(self, text: str) -> None:
        self.update(escape(text))
        self.add_class("visible")

    def hide(self) -> None:
        self.remove_class("visible")
        self.update("")

    @property
    def is_visible(self) -> bool:
        return self.has_class("visible")
