"""HTTP and subprocess transports used by detection strategies.

Strategies need only two capabilities from the outside world:

- ``HttpClient.request()``: send a request and get status, headers and body
  back, with timeout and retry policy already applied.
- ``CommandRunner.run()``: run a program and get exit status, stdout and
  stderr back.

Both are plain classes so tests can swap in fakes or point them at local
servers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Mapping

import aiohttp

from ambient_id.retry import RetryableError, RetryConfig, RetryPolicy

logger = logging.getLogger(__name__)

#: Statuses worth repeating a request for.
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


# =============================================================================
# Exceptions
# =============================================================================


class TransportError(Exception):
    """Base exception for transport-level failures."""

    pass


class HttpStatusError(TransportError):
    """Raised when a response carries a non-2xx status."""

    def __init__(self, status: int, url: str) -> None:
        self.status = status
        self.url = url
        super().__init__(f"HTTP {status} from {url}")


class HttpConnectionError(TransportError):
    """Raised when a request could not be completed (DNS, connect, timeout)."""

    pass


class MalformedResponseError(TransportError):
    """Raised when a response body does not have the expected shape.

    The message never includes the body itself, which may hold credentials.
    """

    pass


class _TransientFailure(RetryableError):
    pass


class _TransientStatus(RetryableError):
    def __init__(self, response: HttpResponse) -> None:
        self.response = response
        super().__init__(f"HTTP {response.status} from {response.url}")


def _strip_query(url: str) -> str:
    return url.split("?", 1)[0]


# =============================================================================
# HTTP
# =============================================================================


@dataclass(frozen=True)
class HttpResponse:
    """A fully-read HTTP response."""

    status: int
    url: str
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def raise_for_status(self) -> HttpResponse:
        if not self.ok:
            raise HttpStatusError(self.status, self.url)
        return self

    def text(self) -> str:
        try:
            return self.body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedResponseError(
                f"response from {self.url} is not valid UTF-8"
            ) from e

    def json_object(self) -> dict[str, Any]:
        """Decode the body as a JSON object."""
        try:
            data = json.loads(self.body)
        except ValueError as e:
            raise MalformedResponseError(
                f"response from {self.url} is not valid JSON"
            ) from e
        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"response from {self.url} is not a JSON object"
            )
        return data

    def require_str(self, name: str) -> str:
        """Return the string field ``name`` of a JSON object body."""
        value = self.json_object().get(name)
        if not isinstance(value, str):
            raise MalformedResponseError(
                f"response from {self.url} is missing string field {name!r}"
            )
        return value


class HttpClient:
    """Shared aiohttp-based HTTP client with timeout and retry applied.

    The underlying ``aiohttp.ClientSession`` is created on first use so the
    client can be constructed outside a running event loop. One client may
    serve concurrent requests.

    Example:
        >>> async with HttpClient(timeout=10.0) as http:
        ...     response = await http.request("GET", url, params={"a": "b"})
        ...     response.raise_for_status()
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        retry: RetryConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retry = RetryPolicy(retry)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
    ) -> HttpResponse:
        """Send a request and read the whole response.

        Transport failures and retryable statuses are retried per the
        client's :class:`RetryConfig`. When retries run out on a retryable
        status the last response is returned so the caller can judge it.

        Raises:
            HttpConnectionError: If no response could be obtained.
        """
        display_url = _strip_query(url)

        async def send_once() -> HttpResponse:
            session = self._get_session()
            try:
                async with session.request(
                    method, url, params=params, headers=headers, json=json
                ) as resp:
                    body = await resp.read()
                    response = HttpResponse(
                        status=resp.status,
                        url=display_url,
                        body=body,
                        headers=dict(resp.headers),
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise _TransientFailure(f"{method} {display_url}: {e!r}") from e

            if response.status in RETRYABLE_STATUSES:
                raise _TransientStatus(response)
            return response

        logger.debug(f"HTTP {method} {display_url}")
        try:
            return await self._retry.execute_async(send_once)
        except _TransientStatus as e:
            return e.response
        except _TransientFailure as e:
            raise HttpConnectionError(str(e)) from e.__cause__

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f"HttpClient(timeout={self._timeout.total}, "
            f"max_attempts={self._retry.config.max_attempts})"
        )


# =============================================================================
# Subprocess
# =============================================================================


@dataclass(frozen=True)
class CommandOutput:
    """Captured result of a finished subprocess."""

    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def signal(self) -> int | None:
        """Signal number that terminated the process, if any (POSIX)."""
        if self.returncode < 0:
            return -self.returncode
        return None

    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace").strip()

    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()


class CommandRunner:
    """Runs external programs with asyncio subprocesses."""

    async def run(self, program: str, *args: str) -> CommandOutput:
        """Run ``program`` with ``args`` and capture its output.

        Raises:
            OSError: If the program cannot be started (e.g. not on PATH).
        """
        logger.debug(f"Running {program} {' '.join(args[:2])}")
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        assert process.returncode is not None
        return CommandOutput(process.returncode, stdout, stderr)
