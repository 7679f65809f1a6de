"""Messages command - list the persisted messages of a chat."""

import json
import sys
from datetime import datetime

import typer

from chatstream.cli._globals import get_global_config
from chatstream.cli.client import APIClient, APIError
from chatstream.cli.lib.safe_output import emoji, safe_print


def _format_timestamp(ts: str) -> str:
    """Format ISO timestamp to readable format."""
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except Exception:
        return ts


def _truncate_text(text: str, max_len: int = 80) -> str:
    text = text.replace("\n", " ")
    if len(text) > max_len:
        return text[:max_len] + "..."
    return text


def format_message_line(message: dict) -> str:
    sender = message.get("sender") or message.get("direction") or "?"
    when = _format_timestamp(str(message.get("sentTime") or ""))
    marker = emoji("⏳", "[STREAMING]") if message.get("isStreaming") else ""
    line = f"[{when}] {sender}: {_truncate_text(str(message.get('payload') or ''))} {marker}".rstrip()

    extras = []
    if message.get("thinkingDuration"):
        extras.append(f"thought {message['thinkingDuration']}s")
    if message.get("toolCalls"):
        extras.append(f"{len(message['toolCalls'])} tool call(s)")
    if extras:
        line += f"  ({', '.join(extras)})"
    return line


def messages(
    chat_id: str = typer.Argument(..., help="Chat to list"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of messages to show"),
) -> None:
    """List the messages saved in a chat."""
    config = get_global_config()

    try:
        with APIClient(base_url=config.api_base, timeout=config.timeout, retry_times=config.retry_times) as client:
            body = client.get(f"/chats/{chat_id}/messages", params={"limit": limit})
    except APIError as e:
        print(f"\n{e.user_friendly_message()}", file=sys.stderr)
        raise typer.Exit(1)

    if config.output_format == "json":
        safe_print(json.dumps(body, ensure_ascii=False, indent=2))
        return

    items = body.get("messages") or []
    if not items:
        safe_print("No messages yet.")
        return

    for item in items:
        safe_print(format_message_line(item))
    if body.get("is_chat_loading"):
        safe_print(f"\n{emoji('⏳', '[LOADING]')} A response is still being generated")
