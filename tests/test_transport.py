import json

import httpx
import pytest

from menuchat.errors import StreamInterrupted, TransportError, TransportTimeout
from menuchat.transport import decode_line, read_frames, stream_headers, stream_url

SESSION = "3f0c2a1e-8b4d-4c7e-9a10-5d2e6f7a8b9c"


def _sse(*frames) -> str:
    return "".join(f"data: {json.dumps(f)}\n\n" for f in frames)


async def _collect(agen):
    return [item async for item in agen]


class _BrokenStream(httpx.AsyncByteStream):
    """Yields some bytes, then drops the connection."""

    def __init__(self, body: bytes) -> None:
        self._body = body

    async def __aiter__(self):
        yield self._body
        raise httpx.ReadError("connection reset")


# ── decode_line ─────────────────────────────────────────────────


def test_decode_line_parses_data_frame():
    assert decode_line('data: {"type": "connected"}') == {"type": "connected"}


def test_decode_line_ignores_non_data_lines():
    assert decode_line("") is None
    assert decode_line(": keepalive") is None
    assert decode_line("event: message") is None


def test_decode_line_skips_done_marker_and_blank_payload():
    assert decode_line("data: [DONE]") is None
    assert decode_line("data:    ") is None


def test_decode_line_skips_malformed_json(caplog):
    assert decode_line("data: {not json") is None
    assert "malformed" in caplog.text


def test_decode_line_skips_non_object_payload():
    assert decode_line("data: [1, 2]") is None


def test_stream_url_and_headers():
    assert stream_url("http://host:8000/", SESSION) == f"http://host:8000/chat-stream/{SESSION}"
    headers = stream_headers("tok")
    assert headers["Authorization"] == "Bearer tok"
    assert headers["Accept"] == "text/event-stream"
    assert headers["Cache-Control"] == "no-cache"


# ── read_frames ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_read_frames_yields_frames_in_order():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        body = _sse({"type": "connected"}, {"type": "start"}) + "data: {oops\n\n" + _sse({"type": "complete", "result": {"response": "ok"}})
        return httpx.Response(200, text=body, headers={"Content-Type": "text/event-stream"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        frames = await _collect(read_frames(client, "http://api", SESSION, "secret"))

    assert [f["type"] for f in frames] == ["connected", "start", "complete"]
    assert seen["url"] == f"http://api/chat-stream/{SESSION}"
    assert seen["auth"] == "Bearer secret"


@pytest.mark.asyncio
async def test_read_frames_http_error_raises_transport_error():
    def handler(request):
        return httpx.Response(401, text="unauthorized")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(TransportError) as exc_info:
            await _collect(read_frames(client, "http://api", SESSION, "bad"))
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_read_frames_connect_failure_raises_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(TransportError) as exc_info:
            await _collect(read_frames(client, "http://api", SESSION, "tok"))
    assert not isinstance(exc_info.value, StreamInterrupted)


@pytest.mark.asyncio
async def test_read_frames_timeout_raises_transport_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(TransportTimeout):
            await _collect(read_frames(client, "http://api", SESSION, "tok"))


@pytest.mark.asyncio
async def test_read_frames_drop_after_frames_raises_stream_interrupted():
    body = _sse({"type": "connected"}).encode()

    def handler(request):
        return httpx.Response(200, stream=_BrokenStream(body))

    received = []
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(StreamInterrupted):
            async for frame in read_frames(client, "http://api", SESSION, "tok"):
                received.append(frame)
    assert received == [{"type": "connected"}]
