"""Reusable modal dialogs for the menuchat TUI."""

from menuchat.tui.modals.confirm import ConfirmModal

__all__ = ["ConfirmModal"]
