"""
In-process relay of scripted generation jobs.

Stands in for the remote job service during development: a job is a list of
progress events replayed with delays, streamed as SSE ``data:`` lines and
cancellable by request id.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator

from chatstream.schemas.chat import RelayJobStatus, ScriptedEvent
from chatstream.schemas.stream import ProgressEvent

logger = logging.getLogger("chatstream.relay")


def _now_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class RelayJob:
    request_id: str
    events: list[ScriptedEvent]
    interval: float = 0.0
    status: RelayJobStatus = "pending"
    created_at: str = field(default_factory=_now_utc)


def encode_sse(event: ProgressEvent) -> str:
    payload = event.model_dump_json(by_alias=True, include={"progress", "result", "info", "error"})
    return f"data: {payload}\n\n"


class RequestRelay:
    def __init__(self) -> None:
        self._jobs: dict[str, RelayJob] = {}
        self._lock = threading.Lock()

    def register(
        self, events: list[ScriptedEvent], request_id: str | None = None, interval: float = 0.0
    ) -> RelayJob:
        job = RelayJob(
            request_id=request_id or f"req_{uuid.uuid4().hex}",
            events=list(events),
            interval=max(0.0, interval),
        )
        with self._lock:
            self._jobs[job.request_id] = job
        logger.info("Registered relay job %s with %d events", job.request_id, len(job.events))
        return job

    def get(self, request_id: str) -> RelayJob | None:
        with self._lock:
            return self._jobs.get(request_id)

    def cancel(self, request_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(request_id)
            if job is None:
                return False
            if job.status in ("pending", "running"):
                job.status = "cancelled"
        logger.info("Cancelled relay job %s", request_id)
        return True

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    async def stream(self, request_id: str) -> AsyncIterator[str]:
        """Replay a job's events as SSE lines until done or cancelled."""
        job = self.get(request_id)
        if job is None or job.status == "cancelled":
            return
        job.status = "running"
        for index, scripted in enumerate(job.events):
            delay = scripted.delay_ms / 1000.0 or (job.interval if index else 0.0)
            if delay:
                await asyncio.sleep(delay)
            if job.status == "cancelled":
                logger.info("Relay job %s stopped after %d events", request_id, index)
                return
            yield encode_sse(scripted)
        if job.status == "running":
            job.status = "completed"


relay = RequestRelay()
