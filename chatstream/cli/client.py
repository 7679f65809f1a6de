"""
HTTP client for the CLI
Wraps httpx with unified error handling and retry logic, and provides the
SSE transport and message persister the stream engine runs against.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urljoin

import httpx

from chatstream.cli.lib.sse import parse_sse_line
from chatstream.schemas.stream import FinalMessage

logger = logging.getLogger(__name__)


# ============================================================================
# Error Classes
# ============================================================================


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_text: str = ""):
        self.message = message
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(self.message)

    def user_friendly_message(self) -> str:
        """Returns a user-friendly error message."""
        return self.message


class NetworkError(APIError):
    """Network connectivity errors (connection refused, DNS failure, etc.)."""

    def user_friendly_message(self) -> str:
        return (
            f"[ERROR] Unable to connect to server\n\n"
            f"Error: {self.message}\n\n"
            f"Suggestions:\n"
            f"  1. Check that the relay is running (uvicorn chatstream.main:app ...)\n"
            f"  2. Check the --api-base option\n"
            f"  3. Check your network connection"
        )


class TimeoutError(APIError):
    """Request timeout errors."""

    def user_friendly_message(self) -> str:
        return (
            f"[TIMEOUT] Request timed out\n\n"
            f"Error: {self.message}\n\n"
            f"Suggestions:\n"
            f"  1. Check your network connection\n"
            f"  2. Check whether the server is responding slowly\n"
            f"  3. Increase the timeout (--timeout option)"
        )


class HTTPStatusError(APIError):
    """HTTP status code errors (4xx, 5xx)."""

    def user_friendly_message(self) -> str:
        status = self.status_code or "Unknown"
        return (
            f"[SERVER ERROR] (HTTP {status})\n\n"
            f"Error: {self.message}\n\n"
            f"Response: {self.response_text[:200]}"
        )


class JSONParseError(APIError):
    """JSON parsing errors in response."""

    def user_friendly_message(self) -> str:
        return (
            f"[JSON ERROR] Failed to parse JSON\n\n"
            f"Error: {self.message}\n\n"
            f"Raw response: {self.response_text[:200]}"
        )


def _safe_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    safe = {k: "***" for k in headers if k.lower() in ["authorization", "x-api-key"]}
    safe.update({k: v for k, v in headers.items() if k.lower() not in ["authorization", "x-api-key"]})
    return safe


def _process_response(response: httpx.Response) -> Dict[str, Any]:
    """
    Process HTTP response.

    Handles:
    - Non-2xx status codes -> HTTPStatusError
    - JSON parse errors -> JSONParseError

    Returns:
        Parsed JSON response
    """
    if response.status_code >= 400:
        response_text = response.text
        raise HTTPStatusError(
            f"HTTP {response.status_code}: {response_text[:100]}",
            status_code=response.status_code,
            response_text=response_text,
        )

    try:
        return response.json()
    except (json.JSONDecodeError, ValueError) as e:
        response_text = response.text
        raise JSONParseError(
            f"Failed to parse JSON response: {str(e)}",
            response_text=response_text,
        ) from e


# ============================================================================
# HTTP Client
# ============================================================================


class APIClient:
    """
    HTTP Client wrapper around httpx.Client with unified error handling.

    Used by the one-shot CLI commands (listing messages, registering jobs).
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        timeout: float = 30.0,
        retry_times: int = 1,
    ):
        """
        Initialize API client.

        Args:
            base_url: Base URL for API server (e.g., http://127.0.0.1:8000)
            timeout: Request timeout in seconds
            retry_times: Number of retries on network errors (not on 4xx/5xx)
        """
        self.base_url = base_url
        self.timeout = timeout
        self.retry_times = max(1, retry_times)

        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            trust_env=False,  # Prevent SOCKS proxy detection
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Close the underlying httpx client."""
        if self._client:
            self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = urljoin(self.base_url, path)
        logger.debug(f"{method} {url} | headers: {_safe_headers(kwargs.get('headers', {}))}")

        for attempt in range(1, self.retry_times + 1):
            try:
                response = self._client.request(method, path, **kwargs)
                return _process_response(response)
            except httpx.ConnectTimeout as e:
                logger.error(f"Request failed (attempt {attempt}): {type(e).__name__}: {str(e)}")
                if attempt >= self.retry_times:
                    raise NetworkError("Connection timeout: server may be unreachable") from e
            except httpx.TimeoutException as e:
                logger.error(f"Request failed (attempt {attempt}): {type(e).__name__}: {str(e)}")
                if attempt >= self.retry_times:
                    raise TimeoutError(f"Request timeout after {self.retry_times} attempts") from e
            except (httpx.ConnectError, httpx.NetworkError) as e:
                logger.error(f"Request failed (attempt {attempt}): {type(e).__name__}: {str(e)}")
                if attempt >= self.retry_times:
                    raise NetworkError(str(e)) from e
            except httpx.HTTPError as e:
                logger.error(f"Request failed (attempt {attempt}): {type(e).__name__}: {str(e)}")
                if attempt >= self.retry_times:
                    raise NetworkError(f"HTTP error: {str(e)}") from e
        raise NetworkError(f"{method} {path} failed")

    def get(self, path: str, **kwargs) -> Dict[str, Any]:
        """
        Make GET request.

        Raises:
            NetworkError: Connection failure
            TimeoutError: Request timeout
            HTTPStatusError: Non-2xx HTTP status
            JSONParseError: JSON parsing failure
        """
        return self._request("GET", path, **kwargs)

    def post(self, path: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        """Make POST request. Raises the same errors as ``get``."""
        return self._request("POST", path, json=json, **kwargs)


# ============================================================================
# Async Version
# ============================================================================


class AsyncAPIClient:
    """
    Async HTTP Client wrapper around httpx.AsyncClient with unified error handling.

    Features:
    - Configurable base_url, timeout, retry strategy
    - Unified error handling for network, timeout, HTTP status, JSON parse errors
    - Support for streaming responses (SSE)
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        timeout: float = 30.0,
        retry_times: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.retry_times = max(1, retry_times)

        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = urljoin(self.base_url, path)
        logger.debug(f"{method} {url} | headers: {_safe_headers(kwargs.get('headers', {}))}")

        for attempt in range(1, self.retry_times + 1):
            try:
                response = await self._client.request(method, path, **kwargs)
                return _process_response(response)
            except httpx.TimeoutException as e:
                logger.error(f"Request failed (attempt {attempt}): {type(e).__name__}: {str(e)}")
                if attempt >= self.retry_times:
                    raise TimeoutError(f"Request timeout after {self.retry_times} attempts") from e
            except (httpx.ConnectError, httpx.NetworkError) as e:
                logger.error(f"Request failed (attempt {attempt}): {type(e).__name__}: {str(e)}")
                if attempt >= self.retry_times:
                    raise NetworkError(str(e)) from e
            except httpx.HTTPError as e:
                logger.error(f"Request failed (attempt {attempt}): {type(e).__name__}: {str(e)}")
                if attempt >= self.retry_times:
                    raise NetworkError(f"HTTP error: {str(e)}") from e
        raise NetworkError(f"{method} {path} failed")

    async def get(self, path: str, **kwargs) -> Dict[str, Any]:
        """Make async GET request."""
        return await self._request("GET", path, **kwargs)

    async def post(self, path: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        """Make async POST request."""
        return await self._request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> Dict[str, Any]:
        """Make async PUT request."""
        return await self._request("PUT", path, json=json, **kwargs)

    @asynccontextmanager
    async def stream(
        self, method: str, path: str, json: Optional[Dict[str, Any]] = None, **kwargs
    ) -> AsyncIterator[httpx.Response]:
        """
        Open a streaming request for SSE processing.

        Usage:
            async with client.stream("GET", "/requests/req_1/events") as response:
                async for line in response.aiter_lines():
                    ...

        Raises:
            NetworkError: Connection failure
            TimeoutError: Request timeout
            HTTPStatusError: Non-2xx HTTP status
        """
        url = urljoin(self.base_url, path)
        logger.debug(f"{method} {url} (stream)")

        # Sparse server events must not trip the read timeout; inactivity is
        # the engine watchdog's job.
        stream_timeout = kwargs.pop("timeout", None)
        if stream_timeout is None:
            stream_timeout = httpx.Timeout(
                connect=self.timeout,
                read=None,
                write=self.timeout,
                pool=self.timeout,
            )

        try:
            async with self._client.stream(method, path, json=json, timeout=stream_timeout, **kwargs) as response:
                if response.status_code >= 400:
                    response_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise HTTPStatusError(
                        f"HTTP {response.status_code}: {response_text[:100]}",
                        status_code=response.status_code,
                        response_text=response_text,
                    )
                yield response
        except httpx.ConnectTimeout as e:
            raise NetworkError("Connection timeout: server may be unreachable") from e
        except httpx.TimeoutException as e:
            raise TimeoutError("Stream request timeout") from e
        except (httpx.ConnectError, httpx.NetworkError) as e:
            raise NetworkError(str(e)) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"HTTP error: {str(e)}") from e


# ============================================================================
# Engine collaborators
# ============================================================================


class SSETransport:
    """Subscribes to a request's progress events over the relay's SSE endpoint."""

    def __init__(self, client: AsyncAPIClient):
        self._client = client

    async def subscribe(self, request_id: str) -> AsyncIterator[Dict[str, Any]]:
        path = f"/requests/{request_id}/events"
        async with self._client.stream("GET", path) as response:
            async for line in response.aiter_lines():
                event = parse_sse_line(line)
                if event is not None:
                    yield event

    async def cancel(self, request_id: str) -> None:
        await self._client.post(f"/requests/{request_id}/cancel", json={})


class HTTPMessagePersister:
    """Saves finished messages through the chat API."""

    def __init__(self, client: AsyncAPIClient):
        self._client = client

    async def save_final_message(self, chat_id: str, message: FinalMessage, is_chat_loading: bool) -> Dict[str, Any]:
        return await self._client.put(
            f"/chats/{chat_id}/messages/final",
            json={"message": message.to_record(), "is_chat_loading": is_chat_loading},
        )

    async def clear_loading(self, chat_id: str) -> Dict[str, Any]:
        return await self._client.post(f"/chats/{chat_id}/loading", params={"is_chat_loading": False})
