"""Session id minting, reuse rules, and the expiring session registry."""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable

from menuchat.errors import SessionIdentityError

logger = logging.getLogger(__name__)

SENTINEL_SESSION_ID = "unknown"
DEFAULT_SESSION_TTL = 30 * 60.0

_UUID4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class Action(Enum):
    USER_MESSAGE = auto()
    REQUEST_MORE = auto()
    NEXT_STAGE = auto()


@dataclass(frozen=True)
class ConfirmationState:
    awaiting: bool = False
    session_id: str | None = None

    @property
    def pending(self) -> bool:
        return self.awaiting and bool(self.session_id)


@dataclass(frozen=True)
class SessionIdentity:
    session_id: str
    is_continuation: bool = False
    old_session_id: str | None = None


def new_session_id() -> str:
    return str(uuid.uuid4())


def validate_session_id(session_id: str | None) -> bool:
    """Return True if session_id looks like a UUID v4."""
    if not session_id or not isinstance(session_id, str):
        return False
    return bool(_UUID4_RE.match(session_id))


def is_usable(session_id: str | None) -> bool:
    """False for missing, blank, or sentinel ids."""
    return bool(session_id and session_id.strip() and session_id != SENTINEL_SESSION_ID)


def resolve_identity(
    action: Action,
    confirmation: ConfirmationState | None = None,
    prompt_session_id: str | None = None,
    mint: Callable[[], str] = new_session_id,
) -> SessionIdentity:
    """Decide which session id an outbound action uses.

    USER_MESSAGE mints a new id unless a confirmation is pending, in which
    case the confirmation's id is reused. REQUEST_MORE mints a new id and
    carries the prompt's id as the context-restore reference. NEXT_STAGE
    reuses the prompt's id. Raises SessionIdentityError when an action
    that continues a prompt has no usable id.
    """
    if action is Action.USER_MESSAGE:
        if confirmation is not None and confirmation.pending:
            logger.debug("reusing confirmation session %s", confirmation.session_id)
            return SessionIdentity(confirmation.session_id, is_continuation=True)
        return SessionIdentity(mint())

    if not is_usable(prompt_session_id):
        raise SessionIdentityError(
            f"{action.name.lower()} requires the prompt's session id, got {prompt_session_id!r}"
        )

    if action is Action.REQUEST_MORE:
        session_id = mint()
        while session_id == prompt_session_id:
            session_id = mint()
        logger.debug("minted %s for more proposals (restoring %s)", session_id, prompt_session_id)
        return SessionIdentity(session_id, old_session_id=prompt_session_id)

    return SessionIdentity(prompt_session_id, is_continuation=True)


class SessionRegistry:
    """Expiring set of live session ids.

    The clock is injected so tests can drive expiry; by default it is
    time.monotonic and expiry is measured in seconds.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        ttl: float = DEFAULT_SESSION_TTL,
    ) -> None:
        self._clock = clock
        self._ttl = ttl
        self._sessions: dict[str, tuple[float, float]] = {}

    def register(self, session_id: str, ttl: float | None = None) -> None:
        self.cleanup()
        now = self._clock()
        self._sessions[session_id] = (now, now + (self._ttl if ttl is None else ttl))

    def is_valid(self, session_id: str) -> bool:
        entry = self._sessions.get(session_id)
        if entry is None:
            return False
        return self._clock() < entry[1]

    def remove(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def cleanup(self) -> int:
        """Drop expired sessions. Returns the number removed."""
        now = self._clock()
        expired = [sid for sid, (_, expires_at) in self._sessions.items() if now >= expires_at]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def active_count(self) -> int:
        self.cleanup()
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return self.is_valid(session_id)
