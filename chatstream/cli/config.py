"""
chatstream CLI configuration

Handles configuration priority:
  1. CLI flags (highest priority)
  2. Environment variables
  3. Default values (lowest priority)

Configuration sources:
  - API_BASE: CHATSTREAM_API_BASE (env) → http://127.0.0.1:8000 (default)
  - TIMEOUT: CHATSTREAM_CLI_TIMEOUT (env) → 30 (default, seconds)
  - OUTPUT_FORMAT: CHATSTREAM_CLI_OUTPUT_FORMAT (env) → text (default, text|json)
  - RETRY_TIMES: CHATSTREAM_CLI_RETRY_TIMES (env) → 3 (default)
"""

import os
from dataclasses import dataclass
from typing import Literal, Optional


@dataclass
class CLIConfig:
    """CLI Configuration object."""

    api_base: str = "http://127.0.0.1:8000"
    timeout: int = 30  # seconds
    output_format: Literal["text", "json"] = "text"
    retry_times: int = 3
    verbose: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary (safe for display, no secrets)."""
        return {
            "api_base": self.api_base,
            "timeout": self.timeout,
            "output_format": self.output_format,
            "retry_times": self.retry_times,
            "verbose": self.verbose,
        }


def get_api_base_from_env() -> str:
    """
    Get API base URL from environment variables.

    Source: CHATSTREAM_API_BASE
    Default: http://127.0.0.1:8000
    """
    api_base = os.getenv("CHATSTREAM_API_BASE")
    if api_base:
        return api_base

    return "http://127.0.0.1:8000"


def _int_from_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        if value:
            return int(value)
    except (ValueError, TypeError):
        pass

    return default


def get_timeout_from_env() -> int:
    """Source: CHATSTREAM_CLI_TIMEOUT (seconds). Default: 30"""
    return _int_from_env("CHATSTREAM_CLI_TIMEOUT", 30)


def get_output_format_from_env() -> Literal["text", "json"]:
    """Source: CHATSTREAM_CLI_OUTPUT_FORMAT (text|json). Default: text"""
    output_format = os.getenv("CHATSTREAM_CLI_OUTPUT_FORMAT", "text").lower()
    if output_format in ("text", "json"):
        return output_format  # type: ignore
    return "text"


def get_retry_times_from_env() -> int:
    """Source: CHATSTREAM_CLI_RETRY_TIMES. Default: 3"""
    return _int_from_env("CHATSTREAM_CLI_RETRY_TIMES", 3)


def get_config(
    api_base: Optional[str] = None,
    timeout: Optional[int] = None,
    output_format: Optional[Literal["text", "json"]] = None,
    retry_times: Optional[int] = None,
    verbose: Optional[bool] = None,
) -> CLIConfig:
    """
    Build CLI configuration with priority: CLI flag > env > default.

    Returns:
        CLIConfig object with resolved values
    """
    return CLIConfig(
        api_base=api_base or get_api_base_from_env(),
        timeout=timeout or get_timeout_from_env(),
        output_format=output_format or get_output_format_from_env(),
        retry_times=retry_times or get_retry_times_from_env(),
        verbose=bool(verbose),
    )
