import json
import logging
from pathlib import Path

from menuchat.events import ProgressSnapshot
from menuchat.types import EntryDict

logger = logging.getLogger(__name__)

ENTRY_COLORS = {
    "user": "\033[32m",       # green
    "assistant": "\033[36m",  # cyan
    "streaming": "\033[33m",  # yellow
    "error": "\033[31m",      # red
    "timeout": "\033[35m",    # magenta
}
ENTRY_LABELS = {
    "user": "you",
    "assistant": "assistant",
    "streaming": "working",
    "error": "error",
    "timeout": "timeout",
}
RESET = "\033[0m"
BOLD = "\033[1m"


def read_log(path: Path) -> list[EntryDict]:
    """Load a transcript written by append_entry, skipping lines that are not entries."""
    if not path.exists():
        return []
    entries = []
    for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("%s:%d: malformed transcript line skipped: %s", path, lineno, e)
            continue
        if not isinstance(entry, dict) or "kind" not in entry:
            logger.warning("%s:%d: transcript line without an entry kind skipped", path, lineno)
            continue
        entries.append(entry)
    return entries


def append_entry(path: Path, entry: dict) -> None:
    """Append a resolved entry to a JSONL transcript. Placeholders are never written."""
    if entry.get("kind") == "streaming":
        return
    record = {k: v for k, v in entry.items() if k != "progress"}
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False) + "\n")
        f.flush()


def format_progress(progress: ProgressSnapshot | None, status: str = "") -> str:
    if progress is None or progress.total <= 0:
        return status or "..."
    line = f"[{progress.completed}/{progress.total}] {progress.percentage:.0f}%"
    label = status or progress.current_task
    return f"{line} {label}" if label else line


def render_candidates(entry: dict) -> list[str]:
    lines = []
    for i, candidate in enumerate(entry.get("candidates") or [], start=1):
        title = candidate.get("title", "") if isinstance(candidate, dict) else str(candidate)
        lines.append(f"  {i}. {title}")
    return lines


def render_entry(entry: dict, round_number: int | None = None) -> str:
    kind = entry.get("kind", "assistant")
    color = ENTRY_COLORS.get(kind, "\033[37m")  # default white
    label = ENTRY_LABELS.get(kind, kind)
    if kind == "streaming":
        body = format_progress(entry.get("progress"), entry.get("status", ""))
    else:
        body = entry.get("content", "")
    text = f"{BOLD}{color}[{label}]{RESET} {body}"
    if entry.get("requires_selection"):
        header = f"  ({entry.get('stage', 'main')}, round {round_number or 1}) choose one:"
        text = "\n".join([text, header, *render_candidates(entry)])
    return text
