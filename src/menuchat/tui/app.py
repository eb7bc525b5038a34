"""Main TUI application."""

from __future__ import annotations

from textual.app import App
from textual.binding import Binding

from menuchat.api import AssistantClient
from menuchat.config import ClientConfig
from menuchat.identity import SessionRegistry
from menuchat.tui.screens.chat import ChatScreen


class MenuChatApp(App):
    """menuchat Terminal User Interface."""

    TITLE = "menuchat"

    CSS = """
    #chat-layout {
        height: 1fr;
    }
    #chat-main {
        width: 3fr;
    }
    #chat-sidebar {
        width: 1fr;
        min-width: 24;
        border-left: solid $panel;
        padding: 0 1;
    }
    #message-list {
        height: 1fr;
    }
    .chatbox-user {
        border: round $success;
    }
    .chatbox-assistant {
        border: round $accent;
    }
    .chatbox-streaming {
        border: round $warning;
    }
    .chatbox-error {
        border: round $error;
    }
    .chatbox-timeout {
        border: round $secondary;
    }
    .msg-empty {
        color: $text-muted;
        padding: 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, config: ClientConfig, client: AssistantClient | None = None) -> None:
        super().__init__()
        self.config = config
        self.client = client or AssistantClient.from_config(config)

    def on_mount(self) -> None:
        self.push_screen(ChatScreen(self.client, SessionRegistry(ttl=self.config.registry_ttl)))

    async def on_unmount(self) -> None:
        for screen in self.screen_stack:
            if isinstance(screen, ChatScreen):
                await screen.conversation.close()
        await self.client.aclose()
