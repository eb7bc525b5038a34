"""Custom Textual Messages for conversation → UI communication."""

from __future__ import annotations

from textual.message import Message


class ConversationUpdate(Message):
    """Wraps a Conversation listener notification for delivery to the screen."""

    def __init__(self, event: object) -> None:
        super().__init__()
        self.event = event


class SelectionConfirmed(Message):
    """User pressed Confirm on a selection prompt."""

    def __init__(self, index: int, selection: int) -> None:
        super().__init__()
        self.index = index
        self.selection = selection   # 1-based


class MoreRequested(Message):
    """User asked for additional proposals on a selection prompt."""

    def __init__(self, index: int) -> None:
        super().__init__()
        self.index = index


class SaveRequested(Message):
    """User asked to save the selected recipes as a menu."""
