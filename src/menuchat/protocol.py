"""Frame → ProtocolEvent interpretation for a single connection."""

from __future__ import annotations

import logging
from typing import AsyncIterator

from menuchat.events import (
    Closed,
    Completed,
    Connected,
    Progress,
    ProgressSnapshot,
    ProtocolEvent,
    Started,
    StreamFailed,
    TimedOut,
    is_terminal,
)
from menuchat.types import FrameDict

logger = logging.getLogger(__name__)

NO_RESULT_CODE = "NO_RESULT"
NO_RESULT_MESSAGE = "no valid response received"
DEFAULT_ERROR_MESSAGE = "an error occurred"


class StreamInterpreter:
    """Per-connection state: current progress, last valid result, terminal seen."""

    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id
        self.progress = ProgressSnapshot()
        self.message = ""
        self.connected = False
        self.last_result: dict | None = None
        self.terminal: ProtocolEvent | None = None

    @property
    def finished(self) -> bool:
        return self.terminal is not None

    def feed(self, frame: FrameDict) -> ProtocolEvent | None:
        """Decode one frame. Returns None for frames that carry no event."""
        kind = frame.get("type")
        message = frame.get("message") or ""

        if kind == "connected":
            self.connected = True
            self.message = message
            return Connected(message)

        if kind == "start":
            if "progress" in frame:
                snapshot = self._snapshot(frame["progress"])
                if snapshot is None:
                    return None
                self.progress = snapshot
            self.message = message
            return Started(message)

        if kind == "progress":
            if not frame.get("progress"):
                logger.debug("progress frame without progress data ignored")
                return None
            snapshot = self._snapshot(frame["progress"])
            if snapshot is None:
                return None
            self.progress = snapshot
            self.message = message
            return Progress(self.progress, message)

        if kind == "complete":
            result = frame.get("result")
            if not result:
                logger.warning("complete frame without result ignored (%s)", self.session_id)
                return None
            # Not terminal: a later complete frame replaces this result.
            self.last_result = result
            self.progress = self.progress.frozen()
            return None

        if kind == "error":
            error = frame.get("error") or {}
            return self._terminate(StreamFailed(
                code=str(error.get("code") or "STREAM_ERROR"),
                message=error.get("message") or message or DEFAULT_ERROR_MESSAGE,
                details=error.get("details"),
            ))

        if kind == "timeout":
            return self._terminate(TimedOut(message))

        if kind == "close":
            self.connected = False
            self.message = message
            return Closed(message)

        logger.warning("unknown event type %r ignored", kind)
        return None

    def finish(self) -> ProtocolEvent | None:
        """Called once the transport ends or the server sends close.

        Resolves with the last recorded result, or synthesizes the
        "no valid response received" failure when there is none.
        """
        if self.terminal is not None:
            return None
        if self.last_result:
            return self._terminate(Completed(self.last_result))
        return self._terminate(StreamFailed(NO_RESULT_CODE, NO_RESULT_MESSAGE))

    def _snapshot(self, data) -> ProgressSnapshot | None:
        try:
            return ProgressSnapshot.from_wire(data)
        except (TypeError, ValueError) as e:
            logger.warning("malformed progress data ignored (%s): %s", self.session_id, e)
            return None

    def _terminate(self, event: ProtocolEvent) -> ProtocolEvent:
        self.terminal = event
        self.progress = self.progress.frozen()
        return event


async def interpret(
    frames: AsyncIterator[FrameDict],
    interpreter: StreamInterpreter | None = None,
) -> AsyncIterator[ProtocolEvent]:
    """Turn raw frames into events, ending with exactly one terminal event.

    error and timeout frames end the stream at once. complete frames only
    record a result; the last one recorded is yielded as Completed when the
    frames run out or a close frame arrives. Without one, the terminal is
    the synthesized "no valid response received" failure.
    """
    interp = interpreter or StreamInterpreter()
    try:
        async for frame in frames:
            event = interp.feed(frame)
            if event is None:
                continue
            yield event
            if is_terminal(event) or isinstance(event, Closed):
                break
    finally:
        aclose = getattr(frames, "aclose", None)
        if aclose is not None:
            await aclose()
    final = interp.finish()
    if final is not None:
        yield final
