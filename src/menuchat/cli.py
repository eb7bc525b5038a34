import argparse
import asyncio
import logging
import sys
from pathlib import Path

from menuchat.api import AssistantClient
from menuchat.config import find_config, load_client_config
from menuchat.conversation import append_entry, format_progress, read_log, render_entry
from menuchat.errors import MenuChatError
from menuchat.events import ConfirmationChanged, EntryUpdated
from menuchat.identity import SessionRegistry, new_session_id
from menuchat.orchestrator import Conversation
from menuchat.rounds import round_for


def _load_config(args):
    config_path = Path(args.config) if args.config else find_config(Path.cwd())
    return load_client_config(config_path)


def _render(history: list[dict], index: int) -> str:
    entry = history[index]
    round_number = round_for(history, index) if entry.get("requires_selection") else None
    return render_entry(entry, round_number)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


async def send_message(config, text: str, transcript: Path | None = None, out=None) -> list[dict]:
    """Submit one message, print progress until its placeholder resolves, return the history."""
    out = out or sys.stdout
    last_line = None

    def listener(event):
        nonlocal last_line
        if isinstance(event, EntryUpdated) and not event.resolved:
            line = format_progress(event.entry.get("progress"), event.entry.get("status", ""))
            if line != last_line:
                print(f"  {line}", file=out)
                last_line = line
        elif isinstance(event, ConfirmationChanged) and event.awaiting:
            print("  (the assistant needs a confirmation; reply with `menuchat tui`)", file=out)

    async with AssistantClient.from_config(config) as client:
        conversation = Conversation(
            client, listener=listener, registry=SessionRegistry(ttl=config.registry_ttl),
        )
        try:
            await conversation.submit(text)
            await conversation.wait_idle()
        finally:
            await conversation.close()

    history = conversation.history
    for i, entry in enumerate(history):
        if transcript is not None:
            append_entry(transcript, entry)
        if entry["kind"] != "user":
            print(_render(history, i), file=out)
    return history


def cmd_send(args):
    config = _load_config(args)
    transcript = Path(args.transcript) if args.transcript else None
    asyncio.run(send_message(config, args.text, transcript))


def cmd_show(args):
    path = Path(args.transcript)
    if not path.exists():
        print(f"Error: transcript not found: {path}", file=sys.stderr)
        raise SystemExit(1)
    entries = read_log(path)
    if not entries:
        print(f"No entries in {path}")
        return
    for i in range(len(entries)):
        print(_render(entries, i))


def cmd_tui(args):
    config = _load_config(args)
    from menuchat.tui import run_app
    run_app(config)


def cmd_new_session(args):
    print(new_session_id())


def main():
    parser = argparse.ArgumentParser(prog="menuchat", description="Streaming menu assistant client")
    parser.add_argument("--config", help="Path to menuchat.json (default: ./menuchat.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    send_parser = subparsers.add_parser("send", help="Send one message and print the streamed result")
    send_parser.add_argument("text", help="Message text")
    send_parser.add_argument("--transcript", help="Append resolved entries to this JSONL file")

    show_parser = subparsers.add_parser("show", help="Replay a transcript written by send --transcript")
    show_parser.add_argument("transcript", help="Path to the JSONL transcript")

    subparsers.add_parser("tui", help="Open the interactive chat screen")
    subparsers.add_parser("new-session", help="Print a freshly minted session id")

    args = parser.parse_args()
    _configure_logging(args.verbose)

    try:
        if args.command == "send":
            cmd_send(args)
        elif args.command == "show":
            cmd_show(args)
        elif args.command == "tui":
            cmd_tui(args)
        elif args.command == "new-session":
            cmd_new_session(args)
        else:
            parser.print_help()
    except MenuChatError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
