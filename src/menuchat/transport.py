"""Server-push transport: one streaming GET per session id."""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

import httpx

from menuchat.errors import StreamInterrupted, TransportError, TransportTimeout
from menuchat.types import FrameDict

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


def decode_line(line: str) -> FrameDict | None:
    """Decode one `data: <json>` line. Returns None for anything that is not a frame."""
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if not payload or payload == "[DONE]":
        return None
    try:
        frame = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning("skipping malformed frame: %s (%r)", e, payload[:200])
        return None
    if not isinstance(frame, dict):
        logger.warning("skipping non-object frame: %r", payload[:200])
        return None
    return frame


def stream_url(base_url: str, session_id: str) -> str:
    return f"{base_url.rstrip('/')}/chat-stream/{session_id}"


def stream_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "text/event-stream",
        "Cache-Control": "no-cache",
    }


async def read_frames(
    client: httpx.AsyncClient,
    base_url: str,
    session_id: str,
    token: str,
) -> AsyncIterator[FrameDict]:
    """Yield raw frame dicts from `GET /chat-stream/{session_id}`.

    Not restartable. Ends when the server closes the body or the caller
    stops iterating. Raises TransportError if the connection cannot be
    established, StreamInterrupted if it drops after a frame arrived.
    """
    url = stream_url(base_url, session_id)
    received = 0
    try:
        async with client.stream("GET", url, headers=stream_headers(token)) as resp:
            if resp.status_code >= 400:
                await resp.aread()
                raise TransportError(
                    f"HTTP {resp.status_code}: {resp.reason_phrase}",
                    status_code=resp.status_code,
                )
            logger.debug("stream opened: %s", session_id)
            async for line in resp.aiter_lines():
                frame = decode_line(line)
                if frame is None:
                    continue
                received += 1
                yield frame
    except httpx.TimeoutException as e:
        raise TransportTimeout(f"timed out after {received} frames: {e}") from e
    except (httpx.TransportError, httpx.StreamError) as e:
        if received:
            raise StreamInterrupted(f"stream interrupted: {e}") from e
        raise TransportError(f"connection failed: {e}") from e
    finally:
        logger.debug("stream closed: %s (%d frames)", session_id, received)
