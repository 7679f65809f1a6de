from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger("chatstream.watchdog")

DEFAULT_TIMEOUT = 300.0


class InactivityWatchdog:
    """
    Inactivity timer for one session.

    ``arm`` starts the window, ``reset`` restarts it on every accepted event,
    and ``on_fire`` runs at most once per arming if the window elapses.
    """

    def __init__(self, on_fire: Callable[[], None], timeout: float = DEFAULT_TIMEOUT) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self._on_fire = on_fire
        self._handle: asyncio.TimerHandle | None = None
        self.fired = False

    @property
    def is_armed(self) -> bool:
        return self._handle is not None

    def arm(self) -> None:
        self.cancel()
        self.fired = False
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.timeout, self.fire)

    def reset(self) -> None:
        if self.fired:
            return
        self.arm()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def fire(self) -> None:
        if self.fired:
            return
        self.fired = True
        self.cancel()
        logger.debug("Watchdog fired after %.1fs of inactivity", self.timeout)
        self._on_fire()
