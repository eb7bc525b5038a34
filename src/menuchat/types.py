from __future__ import annotations

from typing import Any, Literal, NotRequired, TypedDict

Stage = Literal["main", "sub", "soup"]
EntryKind = Literal["user", "streaming", "assistant", "error", "timeout"]


class ProgressDict(TypedDict):
    completed_tasks: int
    total_tasks: int
    progress_percentage: float
    current_task: str
    remaining_tasks: int
    is_complete: bool


class ErrorDict(TypedDict):
    code: str
    message: str
    details: NotRequired[str]


class FrameDict(TypedDict):
    type: str
    sse_session_id: NotRequired[str]
    timestamp: NotRequired[str]
    message: NotRequired[str]
    progress: NotRequired[ProgressDict]
    result: NotRequired[dict]
    error: NotRequired[ErrorDict]


class CandidateDict(TypedDict):
    title: str
    ingredients: NotRequired[list[str]]
    cooking_time: NotRequired[str]
    description: NotRequired[str]
    category: NotRequired[Stage]
    source: NotRequired[str]
    urls: NotRequired[list[dict]]


class EntryDict(TypedDict):
    kind: EntryKind
    content: str
    session_id: NotRequired[str]
    # streaming placeholder only
    status: NotRequired[str]
    progress: NotRequired[Any]          # ProgressSnapshot
    # resolved assistant entries
    result: NotRequired[dict]
    requires_confirmation: NotRequired[bool]
    requires_selection: NotRequired[bool]
    candidates: NotRequired[list[CandidateDict]]
    task_id: NotRequired[str]
    stage: NotRequired[Stage]
    used_ingredients: NotRequired[list[str]]
    menu_category: NotRequired[str]
    # error entries
    code: NotRequired[str]


class ChatRequestDict(TypedDict):
    message: str
    sse_session_id: str
    confirm: bool


class SelectionRequestDict(TypedDict):
    task_id: str
    selection: int          # 0 = request more proposals
    sse_session_id: str
    old_sse_session_id: NotRequired[str]


class ClientConfigDict(TypedDict):
    base_url: str
    token: NotRequired[str | None]
    timeout: NotRequired[float]
    registry_ttl: NotRequired[float]


class SavedRecipeDict(TypedDict):
    title: str
    source: str
    url: NotRequired[str]
    ingredients: list[str]


class SaveMenuRequestDict(TypedDict):
    recipes: dict[str, SavedRecipeDict]   # keyed by stage
