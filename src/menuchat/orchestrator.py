"""Conversation orchestrator: owns the history and drives every exchange.

Each exchange gets a streaming placeholder entry tagged with its session
id and one reader task. Reader tasks feed protocol events into
Conversation.dispatch, the only code that resolves placeholders. dispatch
never awaits, so on a single event loop two terminal events can never
interleave their history writes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from menuchat.api import AssistantClient
from menuchat.errors import ApiError, MenuChatError, SelectionError, TransportTimeout
from menuchat.events import (
    ActionFailed,
    Closed,
    Completed,
    ConfirmationChanged,
    Connected,
    EntryAppended,
    EntryUpdated,
    Progress,
    ProtocolEvent,
    Started,
    StreamFailed,
    TimedOut,
)
from menuchat.guard import ConnectionGuard
from menuchat.identity import (
    Action,
    ConfirmationState,
    SessionIdentity,
    SessionRegistry,
    new_session_id,
    resolve_identity,
    validate_session_id,
)
from menuchat.protocol import StreamInterpreter, interpret
from menuchat.rounds import is_latest, is_selection_prompt
from menuchat.types import EntryDict, SavedRecipeDict

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = "Processing completed."
TIMEOUT_NOTICE = "The request timed out. Please wait a moment and try again."
NEXT_STAGE_MESSAGE = " "  # backend reads the next stage from its stored session state
DEFAULT_RECIPE_SOURCE = "web"
MENU_STAGES = ("main", "sub", "soup")

Listener = Callable[[object], None]


def selection_info(result: dict) -> dict | None:
    """Return the dict carrying selection fields, if the result asks for a selection.

    The backend nests them under menu_data; older payloads put them at the top level.
    """
    menu = result.get("menu_data")
    if isinstance(menu, dict) and menu.get("requires_selection"):
        return menu
    if result.get("requires_selection"):
        return result
    return None


def saved_recipe(recipe: dict | str) -> SavedRecipeDict:
    """Reduce a selected recipe to the fields /menu/save stores."""
    if not isinstance(recipe, dict):
        return {"title": str(recipe), "source": DEFAULT_RECIPE_SOURCE, "ingredients": []}
    saved: SavedRecipeDict = {
        "title": recipe.get("title") or "",
        "source": recipe.get("source") or DEFAULT_RECIPE_SOURCE,
        "ingredients": list(recipe.get("ingredients") or []),
    }
    urls = recipe.get("urls") or []
    if urls and isinstance(urls[0], dict) and urls[0].get("url"):
        saved["url"] = urls[0]["url"]
    return saved


def _wants_selection(payload: dict) -> bool:
    info = selection_info(payload)
    return bool(info and info.get("candidates") and info.get("task_id"))


def _wants_confirmation(payload: dict) -> bool:
    return bool(payload.get("requires_confirmation") and payload.get("confirmation_session_id"))


class Conversation:
    """One chat screen's worth of state.

    listener, if given, is called synchronously with EntryAppended,
    EntryUpdated, ConfirmationChanged and ActionFailed notifications.
    """

    def __init__(
        self,
        client: AssistantClient,
        listener: Listener | None = None,
        registry: SessionRegistry | None = None,
        mint: Callable[[], str] = new_session_id,
    ) -> None:
        self.client = client
        self.history: list[EntryDict] = []
        self.confirmation = ConfirmationState()
        self.selected_recipes: dict[str, dict] = {}
        self.registry = registry or SessionRegistry()
        self.guard = ConnectionGuard()
        self._listener = listener
        self._mint = mint
        # Session ids whose in-flight exchange is a confirmation continuation
        self._continuations: set[str] = set()
        # Immediate POST responses waiting for their streamed result
        self._advisory: dict[str, dict] = {}

    # ── History helpers ──────────────────────────────────────

    def _notify(self, event: object) -> None:
        if self._listener is not None:
            self._listener(event)

    def _append(self, entry: EntryDict) -> int:
        self.history.append(entry)
        index = len(self.history) - 1
        self._notify(EntryAppended(index, entry))
        return index

    def _replace(self, index: int, entry: EntryDict, resolved: bool) -> None:
        self.history[index] = entry
        self._notify(EntryUpdated(index, entry, resolved=resolved))

    def _pending_index(self, session_id: str) -> int | None:
        """Most recent unresolved placeholder for session_id."""
        for i in range(len(self.history) - 1, -1, -1):
            entry = self.history[i]
            if entry["kind"] == "streaming" and entry.get("session_id") == session_id:
                return i
        return None

    def _add_placeholder(self, session_id: str, status: str = "") -> int:
        return self._append({
            "kind": "streaming",
            "content": status,
            "session_id": session_id,
            "status": status,
            "progress": None,
        })

    def _set_confirmation(self, awaiting: bool, session_id: str | None) -> None:
        state = ConfirmationState(awaiting, session_id if awaiting else None)
        if state == self.confirmation:
            return
        self.confirmation = state
        self._notify(ConfirmationChanged(state.awaiting, state.session_id))

    @property
    def is_busy(self) -> bool:
        return any(entry["kind"] == "streaming" for entry in self.history)

    def prompt_at(self, index: int) -> EntryDict:
        if not 0 <= index < len(self.history) or not is_selection_prompt(self.history[index]):
            raise SelectionError(f"entry {index} is not a selection prompt")
        return self.history[index]

    def _latest_prompt_at(self, index: int) -> EntryDict:
        prompt = self.prompt_at(index)
        if not is_latest(self.history, index):
            raise SelectionError(f"entry {index} is not the latest selection prompt")
        return prompt

    # ── Streams ──────────────────────────────────────────────

    def _open_stream(self, session_id: str) -> bool:
        self.registry.register(session_id)
        return self.guard.open(session_id, lambda: self._follow(session_id))

    async def _follow(self, session_id: str) -> None:
        """Reader task: run one connection to its terminal event."""
        interp = StreamInterpreter(session_id)
        try:
            async for event in interpret(self.client.stream(session_id), interp):
                self.dispatch(session_id, event)
        except asyncio.CancelledError:
            if self.guard.is_deliberate(session_id):
                logger.debug("stream %s cancelled deliberately", session_id)
                return
            raise
        except TransportTimeout as e:
            logger.warning("stream %s timed out: %s", session_id, e)
            self.dispatch(session_id, TimedOut(str(e)))
        except MenuChatError as e:
            logger.error("stream %s failed: %s", session_id, e)
            self.dispatch(session_id, StreamFailed("TRANSPORT_ERROR", str(e)))
        except Exception as e:
            logger.exception("unexpected failure reading stream %s", session_id)
            self.dispatch(session_id, StreamFailed("INTERNAL_ERROR", str(e)))

        # A placeholder can still be pending if its terminal event was a
        # duplicate delivery that dispatch ignored.
        if self._pending_index(session_id) is not None:
            self.dispatch(session_id, StreamFailed("NO_RESULT", "no valid response received"))

    def _fail_request(self, session_id: str, message: str) -> None:
        """The triggering POST failed: cancel its stream and resolve the placeholder."""
        self.guard.cancel(session_id)
        index = self._pending_index(session_id)
        if index is not None:
            self._replace(index, {
                "kind": "error",
                "content": f"Error: {message}",
                "session_id": session_id,
            }, resolved=True)
        self._continuations.discard(session_id)
        self._advisory.pop(session_id, None)
        self.registry.remove(session_id)
        self._set_confirmation(False, None)

    # ── Dispatcher ───────────────────────────────────────────

    def dispatch(self, session_id: str, event: ProtocolEvent) -> None:
        """Apply one protocol event for session_id to the history."""
        index = self._pending_index(session_id)

        if isinstance(event, (Connected, Started, Closed)):
            if index is not None and event.message:
                entry = {**self.history[index], "status": event.message}
                self._replace(index, entry, resolved=False)
            return

        if isinstance(event, Progress):
            if index is not None:
                entry = {
                    **self.history[index],
                    "progress": event.snapshot,
                    "status": event.message or event.snapshot.current_task,
                }
                self._replace(index, entry, resolved=False)
            return

        if isinstance(event, Completed):
            self._on_completed(session_id, index, event.result)
        elif isinstance(event, StreamFailed):
            self._on_failed(session_id, index, event)
        elif isinstance(event, TimedOut):
            self._on_timeout(session_id, index)
        else:
            logger.warning("unhandled event %r for %s", event, session_id)

    def _on_completed(self, session_id: str, index: int | None, result: dict) -> None:
        if _wants_selection(result):
            info = selection_info(result)
            stage = info.get("current_stage") or "main"
            if self._has_prompt(session_id, stage):
                logger.info("duplicate %s proposal for %s ignored", stage, session_id)
                return
            if index is None:
                logger.debug("selection result for %s has no pending entry", session_id)
                return
            self._replace(index, {
                "kind": "assistant",
                "content": result.get("response") or info.get("message") or "",
                "session_id": session_id,
                "result": result,
                "requires_selection": True,
                "candidates": list(info["candidates"]),
                "task_id": info["task_id"],
                "stage": stage,
                "used_ingredients": list(info.get("used_ingredients") or []),
                "menu_category": info.get("menu_category"),
            }, resolved=True)
            self._finish_exchange(session_id, result, keep_session=True)
            self._clear_confirmation_for(session_id)
            return

        if index is None:
            logger.debug("terminal result for %s has no pending entry, ignored", session_id)
            return

        if _wants_confirmation(result):
            confirmation_id = result["confirmation_session_id"]
            if not validate_session_id(confirmation_id):
                logger.warning("confirmation session id %r is not a UUID v4", confirmation_id)
            self._replace(index, {
                "kind": "assistant",
                "content": result.get("response") or "",
                "session_id": session_id,
                "result": result,
                "requires_confirmation": True,
            }, resolved=True)
            self._finish_exchange(session_id, result, keep_session=True)
            self._set_confirmation(True, confirmation_id)
            return

        self._replace(index, {
            "kind": "assistant",
            "content": result.get("response") or FALLBACK_RESPONSE,
            "session_id": session_id,
            "result": result,
        }, resolved=True)
        self._finish_exchange(session_id, result, keep_session=False)
        self._clear_confirmation_for(session_id)

    def _clear_confirmation_for(self, session_id: str) -> None:
        """The confirmation session completed without asking again."""
        if self.confirmation.awaiting and self.confirmation.session_id == session_id:
            self._set_confirmation(False, None)

    def _on_failed(self, session_id: str, index: int | None, event: StreamFailed) -> None:
        if index is None:
            logger.debug("error for %s has no pending entry: %s", session_id, event.message)
            return
        self._replace(index, {
            "kind": "error",
            "content": f"Error: {event.message}",
            "session_id": session_id,
            "code": event.code,
        }, resolved=True)
        was_continuation = session_id in self._continuations
        self._finish_exchange(session_id, None, keep_session=False)
        if was_continuation:
            self._set_confirmation(False, None)

    def _on_timeout(self, session_id: str, index: int | None) -> None:
        if index is None:
            return
        self._replace(index, {
            "kind": "timeout",
            "content": TIMEOUT_NOTICE,
            "session_id": session_id,
        }, resolved=True)
        self._finish_exchange(session_id, None, keep_session=False)

    def _has_prompt(self, session_id: str, stage: str) -> bool:
        return any(
            is_selection_prompt(entry)
            and entry.get("session_id") == session_id
            and entry.get("stage") == stage
            for entry in self.history
        )

    def _finish_exchange(self, session_id: str, result: dict | None, keep_session: bool) -> None:
        self._continuations.discard(session_id)
        advisory = self._advisory.pop(session_id, None)
        if advisory is not None and result is not None:
            _compare_channels(session_id, advisory, result)
        if not keep_session:
            self.registry.remove(session_id)

    def _record_advisory(self, session_id: str, response: dict) -> None:
        """Keep the immediate response until the streamed result arrives; compare then."""
        if self._pending_index(session_id) is not None:
            self._advisory[session_id] = response
            return
        for entry in reversed(self.history):
            if entry.get("session_id") == session_id and "result" in entry:
                _compare_channels(session_id, response, entry["result"])
                return

    # ── User actions ─────────────────────────────────────────

    async def submit(self, text: str) -> SessionIdentity | None:
        """Send a user message. Reuses the confirmation session when one is pending."""
        text = text.strip()
        if not text:
            return None
        identity = resolve_identity(Action.USER_MESSAGE, self.confirmation, mint=self._mint)
        self._append({"kind": "user", "content": text})
        self._add_placeholder(identity.session_id)
        if identity.is_continuation:
            self._continuations.add(identity.session_id)
        self._open_stream(identity.session_id)

        try:
            response = await self.client.send_chat(
                text, identity.session_id, confirm=identity.is_continuation,
            )
        except MenuChatError as e:
            logger.error("chat request failed: %s", e)
            self._fail_request(identity.session_id, str(e))
            return identity
        self._record_advisory(identity.session_id, response)
        return identity

    async def request_more(self, index: int) -> SessionIdentity:
        """Ask for additional proposals for the latest prompt under a fresh session id."""
        prompt = self._latest_prompt_at(index)
        identity = resolve_identity(
            Action.REQUEST_MORE, prompt_session_id=prompt.get("session_id"), mint=self._mint,
        )
        self._warn_if_expired(identity.old_session_id)
        self._add_placeholder(identity.session_id, "Fetching more proposals...")
        self._open_stream(identity.session_id)

        try:
            response = await self.client.send_selection(
                prompt["task_id"], 0, identity.session_id,
                old_session_id=identity.old_session_id,
            )
        except MenuChatError as e:
            logger.error("request for more proposals failed: %s", e)
            self._fail_request(identity.session_id, str(e))
            return identity
        if not response.get("success", False):
            self._fail_request(identity.session_id, response.get("error") or "request failed")
        return identity

    async def confirm_selection(self, index: int, selection: int) -> dict | None:
        """Adopt option `selection` (1-based) of the latest prompt.

        Returns the selection response, or None if the request failed
        (an ActionFailed notification is sent in that case).
        """
        prompt = self._latest_prompt_at(index)
        candidates = prompt.get("candidates") or []
        if not 1 <= selection <= len(candidates):
            raise SelectionError(f"selection must be between 1 and {len(candidates)}, got {selection}")
        identity = resolve_identity(Action.NEXT_STAGE, prompt_session_id=prompt.get("session_id"))

        try:
            response = await self.client.send_selection(
                prompt["task_id"], selection, identity.session_id,
            )
        except MenuChatError as e:
            logger.error("selection failed: %s", e)
            self._notify(ActionFailed("select", str(e), {"index": index, "selection": selection}))
            return None
        if not response.get("success"):
            error = response.get("error") or "selection failed"
            self._notify(ActionFailed("select", error, {"index": index, "selection": selection}))
            return None

        self._append({"kind": "user", "content": f"Selected option {selection}"})
        self._record_selected(prompt, selection, response.get("selected_recipe"))
        if response.get("requires_next_stage"):
            await self.request_next_stage(index)
        return response

    async def request_next_stage(self, index: int) -> SessionIdentity:
        """Resume the prompt's session so the backend proposes the next stage."""
        prompt = self.prompt_at(index)
        identity = resolve_identity(Action.NEXT_STAGE, prompt_session_id=prompt.get("session_id"))
        self._warn_if_expired(identity.session_id)
        self._add_placeholder(identity.session_id, "Fetching the next stage...")
        self._open_stream(identity.session_id)

        try:
            response = await self.client.send_chat(
                NEXT_STAGE_MESSAGE, identity.session_id, confirm=False,
            )
        except MenuChatError as e:
            logger.error("next stage request failed: %s", e)
            self._fail_request(identity.session_id, str(e))
            return identity
        self._record_advisory(identity.session_id, response)
        return identity

    def _record_selected(self, prompt: dict, selection: int, selected: dict | None) -> None:
        if selected:
            stage = selected.get("category") or prompt.get("stage") or "main"
            recipe = selected.get("recipe") or selected
        else:
            stage = prompt.get("stage") or "main"
            recipe = prompt["candidates"][selection - 1]
        self.selected_recipes[stage] = recipe

    def _warn_if_expired(self, session_id: str | None) -> None:
        if session_id and not self.registry.is_valid(session_id):
            logger.warning("session %s is no longer registered; backend context may be gone", session_id)

    # ── Menu ─────────────────────────────────────────────────

    async def save_menu(self) -> str:
        """Save the selected recipes and return the server's message.

        Raises SelectionError if nothing is selected yet, and ApiError if the
        request fails or the server reports that nothing was saved.
        """
        recipes = {
            stage: saved_recipe(self.selected_recipes[stage])
            for stage in MENU_STAGES
            if stage in self.selected_recipes
        }
        if not recipes:
            raise SelectionError("no recipes selected to save")
        response = await self.client.save_menu(recipes)
        if not response.get("success"):
            raise ApiError(response.get("message") or "saving the menu failed")
        total = response.get("total_saved", len(recipes))
        logger.info("menu saved: %s", ", ".join(recipes))
        return response.get("message") or f"Saved {total} recipe{'' if total == 1 else 's'}."

    # ── Lifecycle ────────────────────────────────────────────

    async def clear(self) -> None:
        """Cancel all streams and forget the conversation."""
        await self.guard.close()
        for entry in self.history:
            if entry.get("session_id"):
                self.registry.remove(entry["session_id"])
        self.history = []
        self.selected_recipes = {}
        self._continuations.clear()
        self._advisory.clear()
        self._set_confirmation(False, None)

    async def close(self) -> None:
        """Teardown: cancel every open connection. Never reported as an error."""
        await self.guard.close()

    async def wait_idle(self) -> None:
        """Wait until every open reader has finished."""
        for session_id in self.guard.active_ids():
            await self.guard.wait(session_id)


def _compare_channels(session_id: str, response: dict, result: dict) -> None:
    """The streamed result wins; only log when the immediate response disagrees."""
    if "requires_confirmation" in response and (
        bool(response.get("requires_confirmation")) != bool(result.get("requires_confirmation"))
    ):
        logger.warning(
            "session %s: immediate response and stream disagree on confirmation; using stream",
            session_id,
        )
    if "requires_selection" in response and (
        bool(response.get("requires_selection")) != _wants_selection(result)
    ):
        logger.warning(
            "session %s: immediate response and stream disagree on selection; using stream",
            session_id,
        )
