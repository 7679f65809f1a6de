"""Paced delivery of text fragments to the on-screen buffers."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger("chatstream.scheduler")

DEFAULT_MAX_CHUNK_SIZE = 9
_BOUNDARY_PUNCTUATION = ".,!?"


@dataclass(frozen=True)
class Chunk:
    text: str
    ephemeral: bool = False


def _is_boundary(ch: str) -> bool:
    return ch.isspace() or ch in _BOUNDARY_PUNCTUATION


def chunk_text(text: str, max_size: int = DEFAULT_MAX_CHUNK_SIZE) -> list[str]:
    """
    Split delta text into display chunks of roughly ``max_size`` characters.

    A cut that would land inside a word is pulled back to just after the last
    space of the chunk, so the word travels whole in the next chunk. A single
    whitespace character sitting right at the cut is kept with the chunk it
    ends. Joining the result always gives back ``text``.

    >>> chunk_text("The quick brown fox jumps")
    ['The quick ', 'brown fox ', 'jumps']
    """
    if max_size < 1:
        raise ValueError("max_size must be positive")
    if len(text) <= max_size:
        return [text]

    chunks: list[str] = []
    start = 0
    length = len(text)
    while start < length:
        end = min(start + max_size, length)
        if end < length:
            next_char = text[end]
            if next_char.isspace():
                end += 1
            elif not _is_boundary(next_char):
                last_space = text.rfind(" ", start, end)
                if last_space > start:
                    end = last_space + 1
        chunks.append(text[start:end])
        start = end
    return chunks


class ChunkScheduler:
    """
    FIFO of chunks drained one per tick on the running event loop.

    The queue is shared by both content classes, so chunks reach their buffers
    in global arrival order. ``wait_drained`` resolves once the queue is empty.
    """

    def __init__(
        self,
        dispatch: Callable[[Chunk], None],
        queue: deque[Chunk] | None = None,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        min_interval: float = 0.004,
    ) -> None:
        self._dispatch = dispatch
        self._queue: deque[Chunk] = queue if queue is not None else deque()
        self.max_chunk_size = max_chunk_size
        self.min_interval = max(0.0, min_interval)
        self._task: asyncio.Task | None = None
        self._drained = asyncio.Event()
        if not self._queue:
            self._drained.set()

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def enqueue(self, text: str, ephemeral: bool = False) -> int:
        """Split ``text`` and queue its chunks. Returns the number queued."""
        chunks = chunk_text(text, self.max_chunk_size)
        self._queue.extend(Chunk(piece, ephemeral) for piece in chunks)
        if self._queue:
            self._drained.clear()
            self._ensure_running()
        return len(chunks)

    def _ensure_running(self) -> None:
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._queue:
                chunk = self._queue.popleft()
                self._dispatch(chunk)
                if self._queue:
                    await asyncio.sleep(self.min_interval)
                else:
                    # yield once so a chunk enqueued in the same tick is not starved
                    await asyncio.sleep(0)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Chunk dispatch failed; dropping %d queued chunks", len(self._queue))
            self._queue.clear()
        finally:
            if not self._queue:
                self._drained.set()

    async def wait_drained(self) -> None:
        if not self._queue and not self.is_running:
            return
        await self._drained.wait()

    def stop(self) -> None:
        """Cancel the drain task and discard anything still queued."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._queue.clear()
        self._drained.set()
