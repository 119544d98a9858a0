"""
Shared aiohttp connection pool used by the provider adapters and the stream relay.
"""

import asyncio
import logging

import aiohttp

log = logging.getLogger(__name__)

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()


async def get_connection_pool(max_workers: int = 8) -> aiohttp.ClientSession:
    """
    Gets or creates the shared aiohttp ClientSession.

    Only one pool exists for the lifetime of the process. Timeouts are set per
    request by the callers, so the session itself has none.

    Args:
        max_workers: Maximum concurrent connections per upstream host.
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=max_workers * 4,  # Total connections
            limit_per_host=max_workers,  # Per upstream site / CDN
            ttl_dns_cache=600,  # 10 minutes
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        _connection_pool = aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=None),
        )
        log.debug(f"Created shared connection pool with limit_per_host={max_workers}")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared connection pool closed.")
