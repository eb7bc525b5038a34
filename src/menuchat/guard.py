"""At most one reader task per session id, with deliberate-cancel tracking."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class ConnectionGuard:
    """Owns the reader tasks of one conversation.

    open() is idempotent per session id while a task is running, which
    absorbs duplicate subscriptions from rapid remounts. cancel() and
    cancel_all() mark the cancellation deliberate so the reader can tell
    it apart from a real failure.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}
        self._deliberate: set[str] = set()

    def is_active(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def active_ids(self) -> list[str]:
        return [sid for sid in self._tasks if self.is_active(sid)]

    def open(self, session_id: str, factory: Callable[[], Awaitable[None]]) -> bool:
        """Start factory() as the reader for session_id. Returns False if one is already running."""
        if self.is_active(session_id):
            logger.debug("reader for %s already active, skipping", session_id)
            return False
        self._deliberate.discard(session_id)
        task = asyncio.ensure_future(factory())
        self._tasks[session_id] = task
        task.add_done_callback(lambda t, sid=session_id: self._forget(sid, t))
        return True

    def _forget(self, session_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(session_id) is task:
            del self._tasks[session_id]
            self._deliberate.discard(session_id)

    def is_deliberate(self, session_id: str) -> bool:
        return session_id in self._deliberate

    def cancel(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        if task is None or task.done():
            return False
        self._deliberate.add(session_id)
        task.cancel()
        logger.debug("reader for %s cancelled", session_id)
        return True

    def cancel_all(self) -> list[asyncio.Task]:
        """Cancel every running reader. Returns the tasks so callers can await them."""
        tasks = []
        for session_id in self.active_ids():
            tasks.append(self._tasks[session_id])
            self.cancel(session_id)
        return tasks

    async def wait(self, session_id: str) -> None:
        """Wait for the reader of session_id to finish, if one is running."""
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def close(self) -> None:
        tasks = self.cancel_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
