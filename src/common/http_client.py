"""Shared async HTTP helpers used by the registry client.

Encapsulates retry, timeout and error classification so callers receive an
:class:`HttpResult` value instead of handling aiohttp exceptions themselves.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import aiohttp

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


@dataclass
class HttpResult:
    """Outcome of a GET request after retries."""

    status: int
    body: bytes = b""
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == 200


def default_headers(accept: str = "application/json") -> Dict[str, str]:
    """Headers sent with every registry request."""
    return {"Accept": accept, "User-Agent": Constants.HTTP_USER_AGENT}


async def robust_get(
    session: aiohttp.ClientSession,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> HttpResult:
    """Perform GET request with timeout and retries with DEBUG traces.

    Connection errors, timeouts and 5xx responses are retried up to
    ``Constants.HTTP_RETRY_MAX`` times with exponential backoff. Each attempt
    is bounded by ``timeout`` (defaults to ``Constants.REQUEST_TIMEOUT``).
    """
    safe_target = safe_url(url)
    bound = timeout if timeout is not None else Constants.REQUEST_TIMEOUT
    client_timeout = aiohttp.ClientTimeout(total=bound)
    last_exception: Optional[str] = None
    timed_out = False

    for attempt in range(Constants.HTTP_RETRY_MAX):
        if attempt:
            await asyncio.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
        with Timer() as t:
            try:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request",
                        extra=extra_context(
                            event="http_request",
                            component="http_client",
                            action="GET",
                            target=safe_target,
                            attempt=attempt + 1
                        )
                    )
                async with session.get(url, headers=headers, timeout=client_timeout) as response:
                    body = await response.read()
                    status = response.status
            except asyncio.TimeoutError:
                last_exception = f"timed out after {bound} seconds"
                timed_out = True
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP timeout",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="timeout",
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                continue
            except aiohttp.ClientError as exc:
                last_exception = str(exc) or type(exc).__name__
                timed_out = False
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request exception",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="request_exception",
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                continue

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    status_code=status,
                    duration_ms=t.duration_ms(),
                    target=safe_target
                )
            )
        if status >= 500 and attempt + 1 < Constants.HTTP_RETRY_MAX:
            last_exception = f"HTTP {status}"
            timed_out = False
            continue
        return HttpResult(status=status, body=body)

    # All retries failed
    return HttpResult(
        status=0,
        timed_out=timed_out,
        error=f"Request failed after {Constants.HTTP_RETRY_MAX} attempts: {last_exception}",
    )


async def get_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> Tuple[HttpResult, Optional[Any]]:
    """Perform GET request and parse JSON response with DEBUG traces.

    Args:
        session: Open aiohttp session.
        url: Target URL
        headers: Optional request headers
        timeout: Per-attempt bound in seconds

    Returns:
        Tuple of (result, parsed_json_or_none)
    """
    result = await robust_get(session, url, headers=headers or default_headers(), timeout=timeout)

    if result.ok and result.body:
        try:
            parsed = json.loads(result.body.decode("utf-8"))
            if is_debug_enabled(logger):
                logger.debug(
                    "Parsed JSON response",
                    extra=extra_context(
                        event="parse",
                        component="http_client",
                        action="get_json",
                        outcome="success",
                        status_code=result.status,
                        target=safe_url(url)
                    )
                )
            return result, parsed
        except (UnicodeDecodeError, json.JSONDecodeError):
            if is_debug_enabled(logger):
                logger.debug(
                    "JSON decode error",
                    extra=extra_context(
                        event="parse",
                        component="http_client",
                        action="get_json",
                        outcome="json_decode_error",
                        status_code=result.status,
                        target=safe_url(url)
                    )
                )
            return result, None

    return result, None
