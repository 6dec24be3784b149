"""
Command-line interface for Open WebUI chat operations

Usage:
    chat-ops chats
    chat-ops message -msg "message text" -id CHAT_ID [--role user|assistant] [--model LABEL]
    chat-ops input --chat-id CHAT_ID --enabled yes|no
"""

import argparse
import sys
from typing import List, Optional

from chat_ops.api import service
from chat_ops.domain.exceptions import BusinessError
from chat_ops.notifications import create_notifier


def chats_command(args) -> int:
    """List chats, newest first"""
    for chat in service.list_chats():
        print(f"{chat['id']} | {chat['title']}")
    return 0


def message_command(args) -> int:
    """Append a message to a chat"""
    notifier = create_notifier(args.notify) if args.notify else None
    result = service.add_message(
        args.chat_id,
        args.message,
        role=args.role,
        model=args.model,
        notifier=notifier,
    )
    if not result["notified"]:
        print("Warning: message stored but connected clients were not notified", file=sys.stderr)
    print(f"Message added successfully to chat '{result['chat_id']}'")
    print(f"Message ID: {result['message_id']}")
    return 0


def input_command(args) -> int:
    """Enable or disable the chat input box"""
    enabled = service.parse_enabled(args.enabled)
    notifier = create_notifier(args.notify) if args.notify else None
    service.set_chat_input(args.chat_id, enabled, notifier=notifier)
    state = "enabled" if enabled else "disabled"
    print(f"Success: Chat input {state} for chat ID: {args.chat_id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chat-ops",
        description="Operator tools for a running Open WebUI instance",
    )
    parser.add_argument(
        "--notify",
        choices=["auto", "socket", "http", "none"],
        default=None,
        help="Notification transport (default: notify_transport setting)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    chats = subparsers.add_parser("chats", help="List chats as '<id> | <title>'")
    chats.set_defaults(func=chats_command)

    message = subparsers.add_parser("message", help="Add a message to a chat")
    message.add_argument("-msg", "--message", required=True, help="Message content to add")
    message.add_argument("-id", "--id", dest="chat_id", required=True, help="Chat ID to add message to")
    message.add_argument("--role", default=None, help="Message role (default: default_role setting)")
    message.add_argument("--model", default=None, help="Model label stored on the message")
    message.set_defaults(func=message_command)

    toggle = subparsers.add_parser("input", help="Toggle chat input enabled/disabled state")
    toggle.add_argument("--chat-id", "-id", dest="chat_id", required=True, help="Chat ID to toggle input for")
    toggle.add_argument("--enabled", "-e", required=True, help="Enable (yes) or disable (no) the input")
    toggle.set_defaults(func=input_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except BusinessError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
