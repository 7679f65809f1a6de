"""
Engine configuration

Handles configuration priority:
  1. Explicit arguments (highest priority)
  2. Environment variables
  3. Default values (lowest priority)

Configuration sources:
  - IDLE_TIMEOUT: CHATSTREAM_IDLE_TIMEOUT (env, seconds) → 300 (default)
  - CHUNK_SIZE: CHATSTREAM_CHUNK_SIZE (env) → 9 (default)
  - DISPATCH_INTERVAL: CHATSTREAM_DISPATCH_INTERVAL_MS (env) → 4 (default, ms)
  - SENDER: CHATSTREAM_SENDER (env) → assistant (default)
  - ENTITY_ID: CHATSTREAM_ENTITY_ID (env) → "" (default)
"""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_IDLE_TIMEOUT = 300.0
DEFAULT_CHUNK_SIZE = 9
DEFAULT_DISPATCH_INTERVAL_MS = 4.0


@dataclass
class EngineConfig:
    """Stream engine configuration object."""

    idle_timeout: float = DEFAULT_IDLE_TIMEOUT  # seconds
    max_chunk_size: int = DEFAULT_CHUNK_SIZE
    min_dispatch_interval: float = DEFAULT_DISPATCH_INTERVAL_MS / 1000.0  # seconds
    thinking_tick: float = 1.0  # seconds
    sender: str = "assistant"
    entity_id: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary (safe for display)."""
        return {
            "idle_timeout": self.idle_timeout,
            "max_chunk_size": self.max_chunk_size,
            "min_dispatch_interval": self.min_dispatch_interval,
            "thinking_tick": self.thinking_tick,
            "sender": self.sender,
            "entity_id": self.entity_id,
        }


def _float_from_env(name: str) -> Optional[float]:
    try:
        raw = os.getenv(name)
        if raw:
            value = float(raw)
            if value > 0:
                return value
    except (ValueError, TypeError):
        pass
    return None


def get_idle_timeout_from_env() -> float:
    """
    Get the inactivity window from environment variables.

    Source: CHATSTREAM_IDLE_TIMEOUT (seconds)
    Default: 300
    """
    return _float_from_env("CHATSTREAM_IDLE_TIMEOUT") or DEFAULT_IDLE_TIMEOUT


def get_chunk_size_from_env() -> int:
    """
    Get max chunk size from environment variables.

    Source: CHATSTREAM_CHUNK_SIZE
    Default: 9
    """
    try:
        raw = os.getenv("CHATSTREAM_CHUNK_SIZE")
        if raw and int(raw) > 0:
            return int(raw)
    except (ValueError, TypeError):
        pass

    return DEFAULT_CHUNK_SIZE


def get_dispatch_interval_from_env() -> float:
    """
    Get the minimum inter-dispatch interval in seconds.

    Source: CHATSTREAM_DISPATCH_INTERVAL_MS (milliseconds)
    Default: 4ms
    """
    millis = _float_from_env("CHATSTREAM_DISPATCH_INTERVAL_MS") or DEFAULT_DISPATCH_INTERVAL_MS
    return millis / 1000.0


def get_engine_config(
    idle_timeout: Optional[float] = None,
    max_chunk_size: Optional[int] = None,
    min_dispatch_interval: Optional[float] = None,
    sender: Optional[str] = None,
    entity_id: Optional[str] = None,
) -> EngineConfig:
    """
    Build engine configuration with priority: argument > env > default.

    Args:
        idle_timeout: Override for the watchdog window (seconds)
        max_chunk_size: Override for the chunk splitting size
        min_dispatch_interval: Override for the scheduler tick spacing (seconds)
        sender: Override for the sender recorded on saved messages
        entity_id: Override for the entity recorded on saved messages

    Returns:
        EngineConfig object with resolved values
    """
    return EngineConfig(
        idle_timeout=idle_timeout or get_idle_timeout_from_env(),
        max_chunk_size=max_chunk_size or get_chunk_size_from_env(),
        min_dispatch_interval=(
            min_dispatch_interval if min_dispatch_interval is not None else get_dispatch_interval_from_env()
        ),
        sender=sender or os.getenv("CHATSTREAM_SENDER", "").strip() or "assistant",
        entity_id=entity_id if entity_id is not None else os.getenv("CHATSTREAM_ENTITY_ID", "").strip(),
    )
