"""Shared HTTP helpers used by the module proxy client.

Encapsulates status-code mapping and timeout/transport error handling so
callers receive typed errors from ``common.errors`` instead of aiohttp
exceptions. This module is dependency-light and can be imported without
cycles.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from common.errors import (
    DeadlineExceededError,
    NotFoundError,
    ProtocolViolationError,
    TransportError,
)
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

# Statuses the proxy uses to say "this module or version does not exist".
NOT_FOUND_STATUSES = (404, 410)
CHUNK_SIZE = 64 * 1024


def check_status(status: int, url: str, *, context: str) -> None:
    """Map a non-success HTTP status to a typed error."""
    if 200 <= status < 300:
        return
    target = safe_url(url)
    if status in NOT_FOUND_STATUSES:
        raise NotFoundError(f"{context}: not found", target=target, status_code=status)
    if status >= 500:
        raise TransportError(
            f"{context}: proxy returned status {status}", target=target, status_code=status
        )
    raise ProtocolViolationError(
        f"{context}: unexpected status {status}", target=target, status_code=status
    )


async def _read_body(
    response: aiohttp.ClientResponse, url: str, *, context: str, max_bytes: Optional[int]
) -> bytes:
    """Stream the response body, enforcing ``max_bytes`` when set."""
    if max_bytes is not None and response.content_length is not None:
        if response.content_length > max_bytes:
            raise ProtocolViolationError(
                f"{context}: response of {response.content_length} bytes exceeds limit of {max_bytes}",
                target=safe_url(url),
            )
    chunks = []
    size = 0
    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
        size += len(chunk)
        if max_bytes is not None and size > max_bytes:
            raise ProtocolViolationError(
                f"{context}: response exceeds limit of {max_bytes} bytes",
                target=safe_url(url),
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def fetch(
    session: aiohttp.ClientSession,
    url: str,
    *,
    context: str,
    timeout: Optional[float] = None,
    headers: Optional[Dict[str, str]] = None,
    max_bytes: Optional[int] = None,
) -> bytes:
    """Perform a GET request and return the body, with typed errors and DEBUG traces.

    Args:
        session: Transport handle used for the request.
        url: Target URL.
        context: Human-readable source tag for logs and error messages.
        timeout: Total seconds allowed for the request, body included.
        headers: Optional request headers.
        max_bytes: Optional cap on the body size.

    Returns:
        bytes: The complete response body.

    Raises:
        NotFoundError: The proxy answered 404 or 410.
        TransportError: Connection failure or 5xx status.
        ProtocolViolationError: Any other unexpected status or an oversize body.
        DeadlineExceededError: ``timeout`` elapsed.
    """
    safe_target = safe_url(url)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context,
                ),
            )
        try:
            async with session.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                check_status(response.status, url, context=context)
                body = await _read_body(response, url, context=context, max_bytes=max_bytes)
        except asyncio.TimeoutError as exc:
            logger.warning("%s request timed out after %s seconds", context, timeout)
            raise DeadlineExceededError(
                f"{context}: request timed out after {timeout} seconds", target=safe_target
            ) from exc
        except aiohttp.ClientError as exc:
            logger.error("%s connection error: %s", context, exc)
            raise TransportError(f"{context}: {exc}", target=safe_target) from exc

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response ok",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success",
                    status_code=response.status,
                    duration_ms=t.duration_ms(),
                    bytes=len(body),
                    target=safe_target,
                    context=context,
                ),
            )
        return body
