"""Derived selection-prompt state: proposal rounds and the latest prompt.

Everything here is a pure function of a history snapshot; nothing is
cached on the entries themselves.
"""

from __future__ import annotations


def is_selection_prompt(entry: dict) -> bool:
    return entry.get("kind") == "assistant" and bool(entry.get("requires_selection"))


def round_for(history: list[dict], index: int, stage: str | None = None) -> int:
    """1 + number of earlier selection prompts for the same stage.

    stage defaults to the stage of history[index].
    """
    if stage is None:
        stage = history[index].get("stage")
    return 1 + sum(
        1 for entry in history[:index]
        if is_selection_prompt(entry) and entry.get("stage") == stage
    )


def latest_prompt_index(history: list[dict]) -> int | None:
    for i in range(len(history) - 1, -1, -1):
        if is_selection_prompt(history[i]):
            return i
    return None


def is_latest(history: list[dict], index: int) -> bool:
    """True only for the most recent selection prompt; all others are read-only."""
    return latest_prompt_index(history) == index


def selection_group(history: list[dict], index: int) -> str:
    """Mutual-exclusion group name for a prompt's options, unique per stage and round."""
    stage = history[index].get("stage") or "main"
    return f"{stage}-{round_for(history, index, stage)}"
