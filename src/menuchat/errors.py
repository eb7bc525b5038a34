"""Exception types. Callers decide how to display them."""

from __future__ import annotations


class MenuChatError(Exception):
    """Base class for all menuchat errors."""
    pass


class ConfigError(MenuChatError):
    """Raised when client configuration is missing or invalid."""
    pass


class TransportError(MenuChatError):
    """The streaming connection could not be established."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamInterrupted(TransportError):
    """The connection dropped after at least one frame was received."""
    pass


class TransportTimeout(TransportError):
    """The provider-enforced request timeout elapsed."""
    pass


class ApiError(MenuChatError):
    """A request/response endpoint returned a non-2xx status or failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionIdentityError(MenuChatError):
    """An action that continues a session has no usable session id."""
    pass


class SelectionError(MenuChatError):
    """A selection action targets a stale prompt or an invalid option."""
    pass
