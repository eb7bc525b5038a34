"""Terminal front end for menuchat, built on Textual."""

from __future__ import annotations

from menuchat.config import ClientConfig


def run_app(config: ClientConfig) -> None:
    """Launch the TUI application."""
    from menuchat.tui.app import MenuChatApp

    app = MenuChatApp(config)
    app.run()
