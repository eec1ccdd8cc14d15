"""
Shared utilities for provider modules.
"""
import asyncio
import aiohttp
import logging
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager

from mountpro.providers.base import (
    MalformedResponseError,
    NetworkFailureError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def get_session(session: Optional[aiohttp.ClientSession] = None):
    """Context manager for aiohttp session handling.

    If session is provided, yields it.
    If not, creates a new session and closes it after use.
    """
    if session is not None:
        yield session
    else:
        async with aiohttp.ClientSession() as new_session:
            yield new_session


async def http_post_json(
    url: str,
    data: Optional[Dict[str, Any]] = None,
    json_data: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 15,
    session: Optional[aiohttp.ClientSession] = None,
    provider_name: Optional[str] = None,
) -> Any:
    """
    POST and parse a JSON response, mapping transport errors to provider errors.

    Cancellation (`asyncio.CancelledError`) is never swallowed.

    Raises:
        ProviderRateLimitError: HTTP 429
        NetworkFailureError: Connection errors and non-200 statuses
        ProviderTimeoutError: Request exceeded `timeout`
        MalformedResponseError: Body is not valid JSON
    """
    try:
        async with get_session(session) as sess:
            async with sess.post(url, data=data, json=json_data, headers=headers,
                                 timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
                if resp.status == 429:
                    raise ProviderRateLimitError(f"{url} rate limited", provider_name)
                if resp.status != 200:
                    raise NetworkFailureError(f"{url} returned status {resp.status}", provider_name,
                                              {"status": resp.status})
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise MalformedResponseError(f"{url} returned invalid JSON: {e}", provider_name)
    except asyncio.TimeoutError:
        raise ProviderTimeoutError(f"{url} timed out after {timeout}s", provider_name)
    except aiohttp.ClientError as e:
        logger.error(f"HTTP POST {url} failed: {e}")
        raise NetworkFailureError(f"{url} unreachable: {e}", provider_name)
