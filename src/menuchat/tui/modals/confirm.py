"""Two-button confirmation modal."""

from __future__ import annotations

from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label


class ConfirmModal(ModalScreen[bool]):
    """Asks a question; dismisses with True for the accept button, False otherwise."""

    DEFAULT_CSS = """
    ConfirmModal {
        align: center middle;
    }
    ConfirmModal > Vertical {
        width: 56;
        height: auto;
        padding: 1 2;
        border: thick $warning;
        background: $surface;
    }
    ConfirmModal Horizontal {
        height: auto;
        align: center middle;
        margin-top: 1;
    }
    ConfirmModal Button {
        margin: 0 2;
    }
    """

    BINDINGS = [
        Binding("y", "accept", "Yes", show=False),
        Binding("n,escape", "reject", "No", show=False),
    ]

    def __init__(self, question: str, accept_label: str = "Yes (Y)", reject_label: str = "No (N)") -> None:
        super().__init__()
        self._question = question
        self._accept_label = accept_label
        self._reject_label = reject_label

    def compose(self):
        with Vertical():
            yield Label(self._question)
            with Horizontal():
                yield Button(self._accept_label, id="btn-accept", variant="warning")
                yield Button(self._reject_label, id="btn-reject")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "btn-accept")

    def action_accept(self) -> None:
        self.dismiss(True)

    def action_reject(self) -> None:
        self.dismiss(False)
