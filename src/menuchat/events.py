from __future__ import annotations

from dataclasses import dataclass, field


# ── Protocol events (one stream) ────────────────────────────────


@dataclass(frozen=True)
class ProgressSnapshot:
    completed: int = 0
    total: int = 0
    percentage: float = 0.0
    current_task: str = ""
    remaining: int = 0
    is_complete: bool = False

    @classmethod
    def from_wire(cls, data: dict | None) -> ProgressSnapshot:
        """Build a snapshot from the server's progress dict.

        completed is clamped to total, and percentage is recomputed
        whenever total is known.
        """
        if not data:
            return cls()
        total = max(int(data.get("total_tasks") or 0), 0)
        completed = max(int(data.get("completed_tasks") or 0), 0)
        if total > 0:
            completed = min(completed, total)
            percentage = round(100.0 * completed / total, 1)
        else:
            percentage = float(data.get("progress_percentage") or 0.0)
        remaining = data.get("remaining_tasks")
        if remaining is None:
            remaining = total - completed
        return cls(
            completed=completed,
            total=total,
            percentage=percentage,
            current_task=str(data.get("current_task") or ""),
            remaining=int(remaining),
            is_complete=bool(data.get("is_complete", False)),
        )

    def frozen(self) -> ProgressSnapshot:
        """Copy marked complete, used when a terminal event arrives."""
        return ProgressSnapshot(
            completed=self.completed,
            total=self.total,
            percentage=self.percentage,
            current_task=self.current_task,
            remaining=self.remaining,
            is_complete=True,
        )


@dataclass(frozen=True)
class Connected:
    message: str = ""


@dataclass(frozen=True)
class Started:
    message: str = ""


@dataclass(frozen=True)
class Progress:
    snapshot: ProgressSnapshot
    message: str = ""


@dataclass(frozen=True)
class Completed:
    result: dict


@dataclass(frozen=True)
class StreamFailed:
    code: str
    message: str
    details: str | None = None


@dataclass(frozen=True)
class TimedOut:
    message: str = ""


@dataclass(frozen=True)
class Closed:
    """The server said the transport is ending; the stream resolves next."""
    message: str = ""


ProtocolEvent = Connected | Started | Progress | Completed | StreamFailed | TimedOut | Closed

TERMINAL_EVENTS = (Completed, StreamFailed, TimedOut)


def is_terminal(event: ProtocolEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)


# ── Conversation notifications (history listener) ───────────────


@dataclass
class EntryAppended:
    index: int
    entry: dict


@dataclass
class EntryUpdated:
    """An entry changed in place (progress tick or placeholder resolution)."""
    index: int
    entry: dict
    resolved: bool = False


@dataclass
class ConfirmationChanged:
    awaiting: bool
    session_id: str | None


@dataclass
class ActionFailed:
    """A user action failed outside any stream (e.g. selection POST)."""
    action: str
    error: str
    details: dict = field(default_factory=dict)
