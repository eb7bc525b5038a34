"""HTTP client for the assistant service: stream, chat, selection and menu-save endpoints."""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from menuchat.config import ClientConfig, TokenProvider
from menuchat.errors import ApiError
from menuchat.transport import read_frames
from menuchat.types import (
    ChatRequestDict,
    FrameDict,
    SavedRecipeDict,
    SaveMenuRequestDict,
    SelectionRequestDict,
)

logger = logging.getLogger(__name__)


def mask_token(token: str | None) -> str:
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"


async def _check_response(resp: httpx.Response) -> None:
    """Raise ApiError with the server's error message on failure."""
    if resp.status_code < 400:
        return
    await resp.aread()
    try:
        error_data = resp.json()
        # {"error": "..."}, {"error": {"message": "..."}} or FastAPI's {"detail": "..."}
        error = error_data.get("error") or error_data.get("detail") or resp.text
        if isinstance(error, dict):
            error = error.get("message", resp.text)
        error_msg = str(error)
    except Exception:
        error_msg = resp.text
    raise ApiError(f"API error ({resp.status_code}): {error_msg}", status_code=resp.status_code)


class AssistantClient:
    """Thin async wrapper over one httpx.AsyncClient.

    The token provider is awaited before every request and every stream,
    never cached here.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout: float = 180.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @classmethod
    def from_config(cls, config: ClientConfig, http: httpx.AsyncClient | None = None) -> AssistantClient:
        return cls(config.base_url, config.token_provider(), timeout=config.timeout, http=http)

    async def token(self) -> str:
        return await self._token_provider()

    async def _post(self, path: str, body: dict) -> dict:
        token = await self.token()
        url = f"{self.base_url}{path}"
        logger.debug("POST %s (token %s)", url, mask_token(token))
        try:
            resp = await self.http.post(
                url, json=body, headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise ApiError(f"request to {path} timed out") from e
        except httpx.HTTPError as e:
            raise ApiError(f"request to {path} failed: {e}") from e
        await _check_response(resp)
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(f"invalid JSON from {path}: {e}", status_code=resp.status_code) from e

    async def send_chat(self, message: str, session_id: str, confirm: bool = False) -> dict:
        """POST /chat. The response is advisory; the stream carries the real result."""
        body: ChatRequestDict = {
            "message": message,
            "sse_session_id": session_id,
            "confirm": confirm,
        }
        return await self._post("/chat", body)

    async def send_selection(
        self,
        task_id: str,
        selection: int,
        session_id: str,
        old_session_id: str | None = None,
    ) -> dict:
        """POST /chat/selection. selection 0 requests more proposals."""
        body: SelectionRequestDict = {
            "task_id": task_id,
            "selection": selection,
            "sse_session_id": session_id,
        }
        if old_session_id:
            body["old_sse_session_id"] = old_session_id
        return await self._post("/chat/selection", body)

    async def save_menu(self, recipes: dict[str, SavedRecipeDict]) -> dict:
        """POST /menu/save with the chosen recipe for each stage."""
        body: SaveMenuRequestDict = {"recipes": recipes}
        return await self._post("/menu/save", body)

    async def stream(self, session_id: str) -> AsyncIterator[FrameDict]:
        """Open the server-push stream for session_id and yield raw frames."""
        token = await self.token()
        frames = read_frames(self.http, self.base_url, session_id, token)
        try:
            async for frame in frames:
                yield frame
        finally:
            await frames.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> AssistantClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
