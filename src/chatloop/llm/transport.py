"""HTTP transport with a fixed retry/backoff schedule.

Every non-success status and every ``httpx`` error is retried until
``max_attempts`` is exhausted; the last failure is then raised as
:class:`TransportError`.  Cancellation is never retried.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from chatloop.errors import TransportError

_logger = logging.getLogger(__name__)

# Seconds to wait after the 1st, 2nd, ... failed attempt (last value repeats)
BACKOFF_SCHEDULE: tuple[float, ...] = (1, 3, 5, 5, 10)


def backoff_delay(failed_attempts: int) -> float:
    """Delay before the next attempt, given how many attempts already failed."""
    index = max(0, min(failed_attempts - 1, len(BACKOFF_SCHEDULE) - 1))
    return BACKOFF_SCHEDULE[index]


def _status_error(resp: httpx.Response, body: str) -> TransportError:
    return TransportError(
        f"StatusCode {resp.status_code}: {body}",
        status_code=resp.status_code,
        body=body,
    )


class RetryingTransport:
    """Sends JSON POST requests, retrying failures on a fixed schedule."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 900,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=30),
        )

    async def _wait_before_retry(
        self, url: str, attempt: int, max_attempts: int, reason: object,
    ) -> None:
        delay = backoff_delay(attempt)
        _logger.warning(
            "POST %s failed: %s (attempt %d/%d), retrying in %ss",
            url, reason, attempt, max_attempts, delay,
        )
        await asyncio.sleep(delay)

    # ------------------------------------------------------------------
    # Buffered
    # ------------------------------------------------------------------

    async def post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        max_attempts: int = 5,
    ) -> httpx.Response:
        """POST *payload* and return the first successful response."""
        max_attempts = max(1, max_attempts)
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = await self._client.post(url, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                if attempt >= max_attempts:
                    raise TransportError(f"Request to {url} failed: {exc}") from exc
                await self._wait_before_retry(url, attempt, max_attempts, exc)
                continue

            if resp.is_success:
                return resp

            error = _status_error(resp, resp.text)
            if attempt >= max_attempts:
                raise error
            await self._wait_before_retry(
                url, attempt, max_attempts, f"status {resp.status_code}",
            )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _open_stream(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None,
        max_attempts: int,
    ) -> httpx.Response:
        max_attempts = max(1, max_attempts)
        attempt = 0
        while True:
            attempt += 1
            request = self._client.build_request(
                "POST", url, json=payload, headers=headers,
            )
            try:
                resp = await self._client.send(request, stream=True)
            except httpx.HTTPError as exc:
                if attempt >= max_attempts:
                    raise TransportError(f"Request to {url} failed: {exc}") from exc
                await self._wait_before_retry(url, attempt, max_attempts, exc)
                continue

            if resp.is_success:
                return resp

            try:
                await resp.aread()
                body = resp.text
            except httpx.HTTPError:
                body = ""
            finally:
                await resp.aclose()

            error = _status_error(resp, body)
            if attempt >= max_attempts:
                raise error
            await self._wait_before_retry(
                url, attempt, max_attempts, f"status {resp.status_code}",
            )

    @asynccontextmanager
    async def stream_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        max_attempts: int = 5,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streamed POST.

        Only establishing the stream is retried; a failure while reading
        the body is raised as :class:`TransportError`.
        """
        resp = await self._open_stream(url, payload, headers, max_attempts)
        try:
            yield resp
        except httpx.HTTPError as exc:
            raise TransportError(f"Stream from {url} broke: {exc}") from exc
        finally:
            await resp.aclose()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
