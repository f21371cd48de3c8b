#!/usr/bin/env python3
"""
Terminal front-end for folder chats.

Usage:
    # Chat about a folder (Ctrl-C stops the reply in progress)
    python scripts/folder_chat.py --root ~/notes chat projects/alpha

    # Summarize a folder now
    python scripts/folder_chat.py --root ~/notes summarize projects/alpha

    # Show whether the folder changed since its last summary
    python scripts/folder_chat.py --root ~/notes status projects/alpha

    # Convert a legacy JSON chat log to markdown
    python scripts/folder_chat.py --root ~/notes migrate projects/alpha/4senseContext/chat.json

Inside a chat:
    /save          save the last reply to the context folder
    /summary on    send the folder summary with each message (default)
    /summary off   chat without the summary
    /quit          leave
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import TextIO

from foldersense.config import FolderSenseConfig
from foldersense.session.chat_session import ChatSession
from foldersense.session.workspace import FolderWorkspace
from foldersense.storage import LocalBlobStore
from foldersense.stream.errors import Canceled, ChatError
from foldersense.stream.reveal import RevealScheduler
from foldersense.types import MessageRole


class TerminalRenderer:
    """Writes the revealed prefix of a reply to a stream as it grows."""

    def __init__(self, out: TextIO = sys.stdout):
        self.out = out
        self.shown = 0

    def reset(self) -> None:
        self.shown = 0

    def render(self, visible: str) -> None:
        if len(visible) > self.shown:
            self.out.write(visible[self.shown:])
            self.out.flush()
            self.shown = len(visible)

    def finalize(self, text: str) -> None:
        self.render(text)
        self.out.write("\n")
        self.out.flush()


def build_workspace(args: argparse.Namespace) -> FolderWorkspace:
    config = FolderSenseConfig.load(Path(args.config) if args.config else None)
    return FolderWorkspace(LocalBlobStore(args.root), config)


def print_status(path: str, status: str) -> None:
    print(f"  {path}: {status}", file=sys.stderr)


def print_step(step: str) -> None:
    print(step, file=sys.stderr)


async def ask(prompt: str) -> str | None:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


def last_reply(session: ChatSession) -> str | None:
    for message in reversed(session.transcript):
        if message.role is MessageRole.ASSISTANT:
            return message.content
    return None


async def run_request(session: ChatSession, renderer: TerminalRenderer, text: str) -> None:
    """Send one message and wait until its reply is fully shown."""
    loop = asyncio.get_running_loop()
    renderer.reset()
    handle = session.send(text)
    try:
        loop.add_signal_handler(signal.SIGINT, handle.cancel)
    except (NotImplementedError, RuntimeError):
        pass
    try:
        await handle
        if session.reveal is not None:
            await session.reveal.wait_finalized()
    except Canceled:
        print("\n[stopped]")
    except ChatError as e:
        print(f"\nError: {e}", file=sys.stderr)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


async def chat(args: argparse.Namespace) -> int:
    workspace = build_workspace(args)
    renderer = TerminalRenderer()
    stream = workspace.config.stream
    reveal = RevealScheduler(
        renderer.render,
        renderer.finalize,
        tick_interval=stream.tick_interval,
        base_step=stream.base_step,
        catchup_window=stream.catchup_window,
    )
    try:
        session = await workspace.open_chat(
            args.folder,
            reveal=reveal,
            on_artifact_status=print_status,
            on_step=print_step,
        )
    except (ValueError, ChatError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Chatting about {args.folder or '/'} ({len(session.transcript)} earlier messages). /quit to leave.")

    try:
        while True:
            line = await ask("> ")
            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            if text == "/quit":
                break
            if text == "/save":
                reply = last_reply(session)
                if reply is None:
                    print("Nothing to save yet.")
                else:
                    print(f"Saved to {workspace.save_assistant_response(args.folder, reply)}")
                continue
            if text in ("/summary on", "/summary off"):
                session.use_summary = text.endswith("on")
                print(f"Summary {'enabled' if session.use_summary else 'disabled'}.")
                continue
            await run_request(session, renderer, text)
        await session.wait_background()
    finally:
        await session.close()
    return 0


async def summarize(args: argparse.Namespace) -> int:
    workspace = build_workspace(args)
    try:
        await workspace.summarize_folder(args.folder, on_step=print_step)
    except (ValueError, ChatError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Summary saved to {workspace.layout.summary_path(args.folder)}")
    return 0


async def status(args: argparse.Namespace) -> int:
    workspace = build_workspace(args)
    state = workspace.snapshots.evaluate(args.folder, workspace.collect_files(args.folder))
    active = workspace.locator.read_state(args.folder)
    output = {
        "folder": args.folder,
        "snapshot_exists": state.exists,
        "changed": state.changed,
        "added": state.added,
        "removed": state.removed,
        "modified": state.modified,
        "has_summary": workspace.read_summary(args.folder) is not None,
        "active_log": active.activeLogPath if active else None,
    }
    print(json.dumps(output, indent=2))
    return 0


async def migrate(args: argparse.Namespace) -> int:
    workspace = build_workspace(args)
    if not workspace.store.exists(args.log):
        print(f"Error: {args.log} not found", file=sys.stderr)
        return 1
    if workspace.logs.migrate(args.log):
        print(f"Migrated {args.log}")
    else:
        print(f"Nothing to migrate in {args.log}")
    return 0


COMMANDS = {
    "chat": chat,
    "summarize": summarize,
    "status": status,
    "migrate": migrate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with the assistant about a folder")
    parser.add_argument("--root", default=".", help="Directory holding the folders (default: cwd)")
    parser.add_argument("--config", help="Path to config.json (default: ~/.config/foldersense/config.json)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("chat", "Open an interactive chat"),
        ("summarize", "Summarize a folder"),
        ("status", "Show snapshot status"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("folder", help="Folder path relative to --root")
    migrate_parser = subparsers.add_parser("migrate", help="Migrate a legacy JSON chat log")
    migrate_parser.add_argument("log", help="Log path relative to --root")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    if getattr(args, "folder", None) == ".":
        args.folder = ""
    return asyncio.run(COMMANDS[args.command](args))


if __name__ == "__main__":
    sys.exit(main())
