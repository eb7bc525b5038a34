"""Chat screen: message list, input, and live stream updates."""

from __future__ import annotations

from typing import Awaitable

from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import Screen
from textual.widgets import Footer, Header, Input

from menuchat.api import AssistantClient
from menuchat.errors import MenuChatError
from menuchat.events import ActionFailed, ConfirmationChanged, EntryAppended, EntryUpdated
from menuchat.identity import SessionRegistry
from menuchat.orchestrator import Conversation
from menuchat.tui.messages import ConversationUpdate, MoreRequested, SaveRequested, SelectionConfirmed
from menuchat.tui.widgets.action_bar import ActionBar
from menuchat.tui.widgets.message_list import MessageList
from menuchat.tui.widgets.recipe_tile import RecipeTile

INPUT_PLACEHOLDER = "Ask for a menu and press Enter..."
CONFIRM_PLACEHOLDER = "Reply to the assistant's question and press Enter..."


class ChatScreen(Screen):
    """Owns one Conversation and mirrors its history."""

    BINDINGS = [
        Binding("ctrl+l", "clear_conversation", "Clear"),
        Binding("ctrl+s", "save_menu", "Save menu"),
        Binding("home", "scroll_top", "Top", show=False),
        Binding("end", "scroll_bottom", "Bottom", show=False),
    ]

    def __init__(self, client: AssistantClient, registry: SessionRegistry | None = None) -> None:
        super().__init__()
        self.conversation = Conversation(
            client, listener=self._on_conversation_event, registry=registry,
        )

    def compose(self):
        yield Header()
        with Horizontal(id="chat-layout"):
            with Vertical(id="chat-main"):
                yield MessageList(id="message-list")
                yield ActionBar(id="action-bar")
                yield Input(placeholder=INPUT_PLACEHOLDER, id="chat-input")
            with Vertical(id="chat-sidebar"):
                yield RecipeTile(id="recipe-tile")
        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#message-list", MessageList).load_history(self.conversation.history)
        self._refresh_sidebar()
        self.query_one("#chat-input", Input).focus()

    async def on_unmount(self) -> None:
        await self.conversation.close()

    # ── Conversation → UI ────────────────────────────────────

    def _on_conversation_event(self, event: object) -> None:
        """Conversation listener; runs inside dispatch, so only queue a message."""
        self.post_message(ConversationUpdate(event))

    def on_conversation_update(self, message: ConversationUpdate) -> None:
        event = message.event
        msg_list = self.query_one("#message-list", MessageList)
        history = self.conversation.history

        if isinstance(event, EntryAppended):
            msg_list.append_entry(event.index, history)

        elif isinstance(event, EntryUpdated):
            msg_list.update_entry(event.index, event.entry, history, event.resolved)

        elif isinstance(event, ConfirmationChanged):
            bar = self.query_one("#action-bar", ActionBar)
            input_widget = self.query_one("#chat-input", Input)
            if event.awaiting:
                bar.show("The assistant is waiting for your confirmation. Your next message answers it.")
                input_widget.placeholder = CONFIRM_PLACEHOLDER
            else:
                bar.hide()
                input_widget.placeholder = INPUT_PLACEHOLDER

        elif isinstance(event, ActionFailed):
            self.notify(f"{event.action} failed: {event.error}", severity="error")

        self._refresh_sidebar()

    def _refresh_sidebar(self) -> None:
        self.query_one("#recipe-tile", RecipeTile).load_state(
            self.conversation.selected_recipes,
            len(self.conversation.guard.active_ids()),
        )

    # ── UI → Conversation ────────────────────────────────────

    async def _run_action(self, action: Awaitable) -> None:
        try:
            await action
        except MenuChatError as e:
            self.notify(str(e), severity="error")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        text = event.value.strip()
        if not text:
            return
        event.input.value = ""
        self.run_worker(self._run_action(self.conversation.submit(text)), group="conversation")

    def on_selection_confirmed(self, message: SelectionConfirmed) -> None:
        self.run_worker(
            self._run_action(self.conversation.confirm_selection(message.index, message.selection)),
            group="conversation",
        )

    def on_more_requested(self, message: MoreRequested) -> None:
        self.run_worker(
            self._run_action(self.conversation.request_more(message.index)),
            group="conversation",
        )

    def on_save_requested(self, message: SaveRequested) -> None:
        self.action_save_menu()

    # ── Actions ──────────────────────────────────────────────

    def action_clear_conversation(self) -> None:
        from menuchat.tui.modals import ConfirmModal

        self.app.push_screen(
            ConfirmModal("Clear the conversation and close open streams?"),
            callback=self._on_clear_confirmed,
        )

    def action_save_menu(self) -> None:
        self.run_worker(self._save_menu(), exclusive=True, group="save")

    async def _save_menu(self) -> None:
        try:
            message = await self.conversation.save_menu()
        except MenuChatError as e:
            self.notify(f"Saving the menu failed: {e}", severity="error")
            return
        self.notify(message)

    def _on_clear_confirmed(self, confirmed: bool) -> None:
        if confirmed:
            self.run_worker(self._clear(), exclusive=True, group="clear")

    async def _clear(self) -> None:
        await self.conversation.clear()
        self.query_one("#message-list", MessageList).load_history(self.conversation.history)
        self._refresh_sidebar()

    def action_scroll_top(self) -> None:
        self.query_one("#message-list", MessageList).scroll_home(animate=False)

    def action_scroll_bottom(self) -> None:
        self.query_one("#message-list", MessageList).scroll_end(animate=False)
