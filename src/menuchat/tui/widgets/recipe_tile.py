"""Sidebar summary of the recipes picked so far."""

from __future__ import annotations

from rich.markup import escape
from textual.containers import Vertical
from textual.widgets import Button, Static

from menuchat.tui.messages import SaveRequested

STAGE_TITLES = {"main": "Main dish", "sub": "Side dish", "soup": "Soup"}


class RecipeTile(Vertical):
    """Displays selected recipes per stage, the connection count and a save button."""

    def load_state(self, selected: dict[str, dict], active_streams: int = 0) -> None:
        self.remove_children()
        self.mount(Static("[bold]Menu[/bold]", classes="info-title"))

        if not selected:
            self.mount(Static("Nothing selected yet.", classes="info-desc"))
        for stage, recipe in selected.items():
            title = recipe.get("title", "") if isinstance(recipe, dict) else str(recipe)
            label = STAGE_TITLES.get(stage, stage)
            self.mount(Static(f"{escape(label)}: {escape(title)}", classes="info-field"))

        if active_streams:
            self.mount(Static(f"Open streams: {active_streams}", classes="info-field"))

        if selected:
            self.mount(Button("Save menu (Ctrl+S)", classes="btn-save-menu", variant="success"))

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        if event.button.has_class("btn-save-menu"):
            self.post_message(SaveRequested())
