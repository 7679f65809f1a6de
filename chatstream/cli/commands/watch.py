"""Watch command - consume a request's progress stream into a chat message."""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any, Awaitable, Dict, Optional

import typer

from chatstream.cli._globals import get_global_config
from chatstream.cli.client import APIClient, APIError, AsyncAPIClient, HTTPMessagePersister, SSETransport
from chatstream.cli.config import CLIConfig
from chatstream.cli.lib.safe_output import emoji, safe_print, safe_print_err
from chatstream.cli.lib.stream_renderer import StreamRenderer
from chatstream.core.config import EngineConfig, get_engine_config
from chatstream.core.errors import PersistenceError
from chatstream.engine import SessionStatus, StreamingEngine


def _ask_stop() -> Awaitable[bool]:
    """Ask for stop confirmation on a worker thread so the stream keeps flowing."""
    return asyncio.to_thread(typer.confirm, "\nStop generating?", default=True)


def _install_interrupt_handler(engine: StreamingEngine, renderer: StreamRenderer) -> bool:
    """Route Ctrl+C to a confirmed stop instead of killing the process."""
    loop = asyncio.get_running_loop()

    async def _confirm_stop() -> None:
        await engine.stop(confirm=_ask_stop)
        if engine.session.status is not SessionStatus.STREAMING:
            renderer.render_cancelled()

    def _on_interrupt() -> None:
        if engine.session.status is SessionStatus.STREAMING:
            loop.create_task(_confirm_stop())

    try:
        loop.add_signal_handler(signal.SIGINT, _on_interrupt)
    except (NotImplementedError, RuntimeError):
        # add_signal_handler is unavailable on Windows event loops
        return False
    return True


async def run_watch(
    config: CLIConfig,
    engine_config: EngineConfig,
    request_id: str,
    chat_id: str,
    label: str = "",
    renderer: Optional[StreamRenderer] = None,
    client: Optional[AsyncAPIClient] = None,
) -> int:
    """
    Stream one request into ``chat_id`` and return a process exit code.

    Exit codes: 0 saved or nothing to save, 1 stream or save failure.
    """
    renderer = renderer or StreamRenderer()
    owns_client = client is None
    client = client or AsyncAPIClient(
        base_url=config.api_base,
        timeout=config.timeout,
        retry_times=config.retry_times,
    )

    engine = StreamingEngine(
        chat_id=chat_id,
        persister=HTTPMessagePersister(client),
        transport=SSETransport(client),
        config=engine_config,
        on_update=renderer.render,
        on_error=renderer.render_error,
    )

    try:
        renderer.render_label(label)
        engine.start(request_id, initial_label=label)
        handler_installed = _install_interrupt_handler(engine, renderer)
        try:
            session = await engine.wait_closed()
        finally:
            if handler_installed:
                asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
    finally:
        await engine.teardown()
        if owns_client:
            await client.close()

    if session.status is SessionStatus.FAILED or isinstance(engine.last_error, PersistenceError):
        return 1
    if engine.last_message is not None:
        renderer.render_final(engine.last_message, as_json=config.output_format == "json")
    return 0


def watch(
    request_id: str = typer.Argument(..., help="Request id of the generation job to follow"),
    chat_id: str = typer.Option(..., "--chat-id", "-c", help="Chat that receives the finished message"),
    label: str = typer.Option("", "--label", help="Initial label shown while waiting for output"),
    idle_timeout: Optional[float] = typer.Option(
        None,
        "--idle-timeout",
        help="Seconds without events before the stream is abandoned. Overrides CHATSTREAM_IDLE_TIMEOUT.",
    ),
    hide_thinking: bool = typer.Option(False, "--hide-thinking", help="Do not print ephemeral thinking text."),
) -> None:
    """
    Follow a generation job and save its answer to a chat.

    Press Ctrl+C to stop; whatever was produced so far is saved after confirmation.
    """
    config = get_global_config()
    engine_config = get_engine_config(idle_timeout=idle_timeout)
    renderer = StreamRenderer(show_thinking=not hide_thinking)

    code = asyncio.run(run_watch(config, engine_config, request_id, chat_id, label=label, renderer=renderer))
    if code:
        raise typer.Exit(code)


def _load_script(path: Path) -> Dict[str, Any]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, list):
        return {"events": raw}
    if isinstance(raw, dict) and isinstance(raw.get("events"), list):
        return raw
    raise ValueError("script must be a list of events or an object with an 'events' list")


def replay(
    script: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file of scripted progress events"),
    chat_id: str = typer.Option(..., "--chat-id", "-c", help="Chat that receives the finished message"),
    interval_ms: int = typer.Option(0, "--interval-ms", help="Delay between events without their own delay_ms"),
    idle_timeout: Optional[float] = typer.Option(None, "--idle-timeout", help="Inactivity window in seconds"),
) -> None:
    """Register a scripted job with the relay and watch it."""
    config = get_global_config()

    try:
        payload = _load_script(script)
    except (ValueError, json.JSONDecodeError) as e:
        safe_print_err(f"{emoji('❌', '[ERROR]')} Invalid script: {e}")
        raise typer.Exit(2)
    payload.setdefault("interval_ms", interval_ms)

    try:
        with APIClient(base_url=config.api_base, timeout=config.timeout, retry_times=config.retry_times) as client:
            job = client.post("/requests", json=payload)
    except APIError as e:
        print(f"\n{e.user_friendly_message()}", file=sys.stderr)
        raise typer.Exit(1)

    request_id = job["request_id"]
    safe_print(f"{emoji('✅', '[SUCCESS]')} Registered {request_id} ({job.get('event_count', 0)} events)\n")
    code = asyncio.run(
        run_watch(config, get_engine_config(idle_timeout=idle_timeout), request_id, chat_id)
    )
    if code:
        raise typer.Exit(code)
