from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Union

from pydantic import ValidationError

from chatstream.core.config import EngineConfig
from chatstream.core.errors import (
    ParseError,
    PersistenceError,
    StreamError,
    StreamTimeoutError,
    TransportError,
)
from chatstream.engine.finalizer import MessagePersister, build_final_message, keeps_chat_loading
from chatstream.engine.normalizer import merge_info, normalize_event
from chatstream.engine.scheduler import Chunk, ChunkScheduler
from chatstream.engine.session import SessionStatus, StreamSession
from chatstream.engine.watchdog import InactivityWatchdog
from chatstream.schemas.stream import FinalMessage, ProgressEvent, StreamSnapshot

logger = logging.getLogger("chatstream.engine")


class Transport(Protocol):
    """Delivers the progress events of one request id."""

    def subscribe(self, request_id: str) -> AsyncIterator[ProgressEvent | dict[str, Any]]:
        ...

    async def cancel(self, request_id: str) -> None:
        ...


UpdateListener = Callable[[StreamSnapshot], None]
ErrorListener = Callable[[StreamError], None]
Confirm = Callable[[], Union[bool, Awaitable[bool]]]


@dataclass
class _Runtime:
    """Timers, tasks and queues belonging to one session."""

    session: StreamSession
    scheduler: ChunkScheduler
    watchdog: InactivityWatchdog
    mailbox: asyncio.Queue = field(default_factory=asyncio.Queue)
    closed: asyncio.Event = field(default_factory=asyncio.Event)
    pump_task: asyncio.Task | None = None
    consumer_task: asyncio.Task | None = None
    ticker_task: asyncio.Task | None = None
    finalize_task: asyncio.Task | None = None
    release_task: asyncio.Task | None = None


class StreamingEngine:
    """
    Consumes the progress events of a remote generation job and turns them into
    one animated, cancellable chat message that is persisted exactly once.

    All mutation happens on the running event loop: event delivery, watchdog
    fire, scheduler ticks and user actions are discrete callbacks, so status
    checks made synchronously are enough to guard against re-entry.
    """

    def __init__(
        self,
        chat_id: str,
        persister: MessagePersister,
        transport: Transport | None = None,
        config: EngineConfig | None = None,
        on_update: UpdateListener | None = None,
        on_error: ErrorListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.chat_id = chat_id
        self.config = config or EngineConfig()
        self._persister = persister
        self._transport = transport
        self._on_update = on_update
        self._on_error = on_error
        self._clock = clock
        self.session = StreamSession(chat_id=chat_id)
        self._runtime: _Runtime | None = None
        self.last_error: StreamError | None = None
        self.last_message: FinalMessage | None = None

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def start(self, request_id: str, initial_label: str = "") -> StreamSession:
        """
        Attach a new request id. Any previous session is superseded: its
        subscription is dropped and its late events are ignored.
        """
        previous = self._runtime
        if previous is not None and previous.session.status is SessionStatus.STREAMING:
            logger.info(
                "Superseding request %s with %s", previous.session.request_id, request_id
            )
            self._teardown(previous)
            previous.closed.set()

        session = StreamSession.begin(
            request_id, chat_id=self.chat_id, initial_label=initial_label, clock=self._clock
        )
        scheduler = ChunkScheduler(
            dispatch=lambda chunk: self._apply_chunk(session, chunk),
            queue=session.chunk_queue,
            max_chunk_size=self.config.max_chunk_size,
            min_interval=self.config.min_dispatch_interval,
        )
        watchdog = InactivityWatchdog(
            on_fire=lambda: self._on_watchdog_fire(session),
            timeout=self.config.idle_timeout,
        )
        runtime = _Runtime(session=session, scheduler=scheduler, watchdog=watchdog)

        self.session = session
        self._runtime = runtime
        self.last_error = None

        loop = asyncio.get_running_loop()
        watchdog.arm()
        runtime.consumer_task = loop.create_task(self._consume(runtime))
        runtime.ticker_task = loop.create_task(self._tick_thinking(runtime))
        if self._transport is not None:
            runtime.pump_task = loop.create_task(self._pump(runtime, request_id))

        logger.info("Streaming request %s for chat %s", request_id, self.chat_id)
        self._notify(session)
        return session

    def push(self, request_id: str, event: ProgressEvent | dict[str, Any]) -> None:
        """Hand an event to the current session's inbound mailbox."""
        runtime = self._runtime
        if runtime is None or runtime.session.request_id != request_id:
            logger.debug("Dropping event for stale request %s", request_id)
            return
        runtime.mailbox.put_nowait((request_id, event))

    async def stop(self, confirm: Confirm | None = None) -> FinalMessage | None:
        """
        Cancel the current stream. ``confirm`` is the user's confirmation
        prompt; a falsy answer leaves the stream running. Pass None only when
        the host has already obtained confirmation.
        """
        runtime = self._runtime
        if runtime is None or runtime.session.status is not SessionStatus.STREAMING:
            return None

        if confirm is not None:
            answer = confirm()
            if inspect.isawaitable(answer):
                answer = await answer
            if not answer:
                return None
            if runtime.session.status is not SessionStatus.STREAMING:
                return None

        session = runtime.session
        request_id = session.request_id
        logger.info("Cancelling request %s", request_id)
        self._unsubscribe(runtime)

        if session.has_content():
            task = self._trigger_finalize(runtime)
            await self._cancel_remote(request_id)
            return await task if task is not None else None

        released = self._reset_idle(runtime)
        await self._cancel_remote(request_id)
        await released
        return None

    async def teardown(self) -> FinalMessage | None:
        """External teardown: save whatever was produced, then reset."""
        runtime = self._runtime
        if runtime is None:
            return None
        status = runtime.session.status
        if status is SessionStatus.FINALIZING and runtime.finalize_task is not None:
            return await runtime.finalize_task
        if status is not SessionStatus.STREAMING:
            self._teardown(runtime)
            return None

        self._unsubscribe(runtime)
        if runtime.session.has_content():
            task = self._trigger_finalize(runtime)
            return await task if task is not None else None
        await self._reset_idle(runtime)
        return None

    async def finalize(self) -> FinalMessage | None:
        """Finalize the current session now. A second call is a no-op."""
        runtime = self._runtime
        if runtime is None:
            return None
        task = self._trigger_finalize(runtime)
        return await task if task is not None else None

    async def wait_closed(self) -> StreamSession:
        """Wait until the current session is saved, cancelled or failed."""
        runtime = self._runtime
        if runtime is None:
            return self.session
        await runtime.closed.wait()
        return runtime.session

    async def wait_drained(self) -> None:
        runtime = self._runtime
        if runtime is not None:
            await runtime.scheduler.wait_drained()

    def snapshot(self) -> StreamSnapshot:
        session = self.session
        return StreamSnapshot(
            request_id=session.request_id,
            status=session.status.value,
            initial_label=session.initial_label,
            is_streaming=session.is_active,
            is_thinking=session.is_thinking,
            is_chat_loading=session.is_chat_loading,
            streaming_content=session.persistent_text,
            ephemeral_content=session.ephemeral_text,
            tool_calls=session.tool_calls.as_list(),
            thinking_duration=session.thinking.elapsed(),
            citations=list(session.citations),
        )

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def deliver(self, request_id: str, event: ProgressEvent | dict[str, Any]) -> bool:
        """
        Apply one inbound event to the current session. Returns False when the
        event was ignored (stale request id or session no longer streaming).
        """
        runtime = self._runtime
        if runtime is None:
            return False
        session = runtime.session
        if request_id != session.request_id or session.status is not SessionStatus.STREAMING:
            logger.debug("Ignoring event for %s (status=%s)", request_id, session.status.value)
            return False

        if isinstance(event, dict):
            try:
                event = ProgressEvent.model_validate(event)
            except ValidationError as exc:
                err = ParseError(f"Unreadable progress event: {exc.errors()[:1]}", request_id=request_id)
                logger.warning("%s", err.message)
                return False

        runtime.watchdog.reset()
        normalized = normalize_event(event, bool(session.accumulated_info.get("ephemeral")))

        if normalized.error:
            self._fail(runtime, TransportError(normalized.error, request_id=request_id))
            return True

        if normalized.info is not None:
            merged = merge_info(session.accumulated_info, normalized.info)
            if "ephemeral" in normalized.info:
                merged["ephemeral"] = normalized.ephemeral
            session.accumulated_info = merged

        if normalized.tool_message is not None:
            if session.tool_calls.apply(normalized.tool_message):
                session.thinking.open()

        if normalized.delta is not None:
            session.result_observed = True
            if normalized.delta:
                if normalized.ephemeral:
                    session.thinking.open()
                else:
                    session.thinking.close()
                    session.has_persistent = True
                runtime.scheduler.enqueue(normalized.delta, ephemeral=normalized.ephemeral)

        if normalized.is_complete:
            if session.result_observed or session.has_content():
                self._trigger_finalize(runtime)
            else:
                logger.info("Request %s completed without content", request_id)
                self._unsubscribe(runtime)
                self._reset_idle(runtime)
                return True

        self._notify(session)
        return True

    def _apply_chunk(self, session: StreamSession, chunk: Chunk) -> None:
        if chunk.ephemeral:
            session.ephemeral_text += chunk.text
        else:
            session.persistent_text += chunk.text
        self._notify(session)

    async def _consume(self, runtime: _Runtime) -> None:
        while True:
            request_id, event = await runtime.mailbox.get()
            self.deliver(request_id, event)

    async def _pump(self, runtime: _Runtime, request_id: str) -> None:
        assert self._transport is not None
        try:
            async for event in self._transport.subscribe(request_id):
                runtime.mailbox.put_nowait((request_id, event))
        except asyncio.CancelledError:
            raise
        except StreamError as exc:
            runtime.mailbox.put_nowait((request_id, ProgressEvent(error=exc.message)))
        except Exception as exc:
            logger.exception("Subscription for %s broke down", request_id)
            runtime.mailbox.put_nowait((request_id, ProgressEvent(error=f"{type(exc).__name__}: {exc}")))
        else:
            logger.debug("Subscription for %s ended", request_id)

    async def _tick_thinking(self, runtime: _Runtime) -> None:
        session = runtime.session
        while True:
            await asyncio.sleep(self.config.thinking_tick)
            if session.status is SessionStatus.STREAMING and session.is_thinking:
                self._notify(session)

    def _on_watchdog_fire(self, session: StreamSession) -> None:
        runtime = self._runtime
        if runtime is None or runtime.session is not session or session.status is not SessionStatus.STREAMING:
            logger.debug("Watchdog fired for %s after completion; cleaning up", session.request_id)
            return
        self._fail(
            runtime,
            StreamTimeoutError(
                f"No progress received for request {session.request_id}",
                request_id=session.request_id,
                timeout=runtime.watchdog.timeout,
            ),
        )

    # ------------------------------------------------------------------
    # Finalization and teardown
    # ------------------------------------------------------------------

    def _trigger_finalize(self, runtime: _Runtime) -> asyncio.Task | None:
        """Claim finalization synchronously; only the first trigger gets a task."""
        if not runtime.session.try_transition(SessionStatus.FINALIZING):
            return None
        runtime.watchdog.cancel()
        runtime.finalize_task = asyncio.get_running_loop().create_task(self._complete_finalize(runtime))
        return runtime.finalize_task

    async def _complete_finalize(self, runtime: _Runtime) -> FinalMessage | None:
        session = runtime.session
        self._notify(session)
        await runtime.scheduler.wait_drained()

        message = build_final_message(
            session, sender=self.config.sender, entity_id=self.config.entity_id
        )
        keep_loading = keeps_chat_loading(session)
        if message is not None:
            try:
                await self._persister.save_final_message(session.chat_id, message, keep_loading)
            except Exception as exc:
                error = PersistenceError(str(exc) or type(exc).__name__, request_id=session.request_id)
                logger.error("Failed to save message for request %s: %s", session.request_id, exc)
                keep_loading = False
                message = None
                self._report(error)
                await self._release_loading(session)
            else:
                self.last_message = message
                logger.info(
                    "Saved message for request %s (%d chars, thinking %ss)",
                    session.request_id,
                    len(message.payload),
                    message.thinking_duration,
                )
        else:
            keep_loading = False
            await self._release_loading(session)

        self._teardown(runtime)
        session.clear_buffers()
        session.is_chat_loading = keep_loading
        session.transition(SessionStatus.DONE)
        runtime.closed.set()
        self._notify(session)
        return message

    def _fail(self, runtime: _Runtime, error: StreamError) -> None:
        session = runtime.session
        session.transition(SessionStatus.FAILED)
        logger.error("Request %s failed: %s", session.request_id, error.message)
        self._teardown(runtime)
        session.thinking.close()
        session.is_chat_loading = False
        self._close_after_release(runtime)
        self._report(error)
        self._notify(session)

    def _reset_idle(self, runtime: _Runtime) -> asyncio.Task:
        session = runtime.session
        self._teardown(runtime)
        session.clear_buffers()
        session.is_chat_loading = False
        session.transition(SessionStatus.IDLE)
        task = self._close_after_release(runtime)
        self._notify(session)
        return task

    def _close_after_release(self, runtime: _Runtime) -> asyncio.Task:
        """Clear the chat's stored loading flag, then mark the session closed."""

        async def _release() -> None:
            try:
                await self._release_loading(runtime.session)
            finally:
                runtime.closed.set()

        runtime.release_task = asyncio.get_running_loop().create_task(_release())
        return runtime.release_task

    async def _release_loading(self, session: StreamSession) -> None:
        try:
            await self._persister.clear_loading(session.chat_id)
        except Exception as exc:
            logger.warning("Clearing loading flag for chat %s failed: %s", session.chat_id, exc)

    def _unsubscribe(self, runtime: _Runtime) -> None:
        for task in (runtime.pump_task, runtime.consumer_task):
            if task is not None and not task.done():
                task.cancel()
        runtime.pump_task = None
        runtime.consumer_task = None

    def _teardown(self, runtime: _Runtime) -> None:
        """Release every timer, task and subscription of a session."""
        runtime.watchdog.cancel()
        self._unsubscribe(runtime)
        if runtime.ticker_task is not None and not runtime.ticker_task.done():
            runtime.ticker_task.cancel()
        runtime.ticker_task = None
        runtime.scheduler.stop()

    async def _cancel_remote(self, request_id: str | None) -> None:
        cancel = getattr(self._transport, "cancel", None)
        if request_id is None or cancel is None:
            return
        try:
            await cancel(request_id)
        except Exception as exc:
            logger.warning("Remote cancel for %s failed: %s", request_id, exc)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def _report(self, error: StreamError) -> None:
        self.last_error = error
        if self._on_error is not None:
            self._on_error(error)

    def _notify(self, session: StreamSession) -> None:
        if self._on_update is None or session is not self.session:
            return
        self._on_update(self.snapshot())
