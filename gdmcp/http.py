from __future__ import annotations

import asyncio
import logging

import httpx

from .constants import LOGGER
from .errors import BackendOperationError


def _retry_after_seconds(retry_after_header: str | None) -> int | None:
    if retry_after_header is None:
        return None
    try:
        return max(0, int(retry_after_header))
    except ValueError:
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 2,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._max_retries = max(0, max_retries)
        self._sleep = sleep
        self._logger = logger or LOGGER

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = request.content
        retries = 0

        while True:
            next_request = httpx.Request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                content=body,
                extensions=request.extensions,
            )
            response = await self._transport.handle_async_request(next_request)

            if self._max_retries == 0:
                return response

            if response.status_code == 429 and retries < min(self._max_retries, 1):
                wait_seconds = _retry_after_seconds(response.headers.get("retry-after"))
                if wait_seconds is None:
                    wait_seconds = 1
                self._logger.warning(
                    "Retrying 429 after %ss (%s %s)",
                    wait_seconds,
                    request.method,
                    request.url,
                )
                await response.aclose()
                await self._sleep(wait_seconds)
                retries += 1
                continue

            if 500 <= response.status_code < 600 and retries < self._max_retries:
                backoff_seconds = 2**retries
                self._logger.warning(
                    "Retrying %s after %ss (%s %s)",
                    response.status_code,
                    backoff_seconds,
                    request.method,
                    request.url,
                )
                await response.aclose()
                await self._sleep(backoff_seconds)
                retries += 1
                continue

            return response

    async def aclose(self) -> None:
        await self._transport.aclose()


def _friendly_error_message(status_code: int) -> str:
    if status_code == 401:
        return "Authentication failed. Your Google token may have expired or been revoked."
    if status_code == 403:
        return "You don't have permission to perform this action."
    if status_code == 404:
        return "The requested file or document was not found."
    if status_code == 429:
        return "Google API rate limit exceeded. Please try again later."
    if status_code >= 500:
        return "Google API is experiencing issues. Please try again later."
    return f"Google API request failed with status {status_code}."


def google_error_detail(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:500] or None

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return payload.get("error_description") or error
    return None


def raise_for_google_error(response: httpx.Response) -> None:
    if response.status_code < 400:
        return

    message = _friendly_error_message(response.status_code)
    detail = google_error_detail(response)
    if detail:
        message = f"{message} ({detail})"

    LOGGER.warning(
        "Google API error status=%s endpoint=%s detail=%s",
        response.status_code,
        response.request.url,
        detail,
    )
    raise BackendOperationError(message, status_code=response.status_code)
