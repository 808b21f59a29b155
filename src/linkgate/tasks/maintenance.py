"""Periodic cleanup of expired tokens and stale rate limit windows."""

import asyncio
import logging
from typing import Any

from linkgate.services.backend import AuthBackend
from linkgate.services.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


async def sweep_expired(backend: AuthBackend) -> dict[str, Any]:
    """Delete expired tokens (used or not) and elapsed rate limit windows.

    Returns:
        Dict with cleanup counts
    """
    now = backend.clock()
    tokens_removed = await backend.token_store.delete_expired(now)
    windows_removed = await backend.rate_limiter.cleanup_old_entries()

    if tokens_removed or windows_removed:
        logger.info(
            f"Swept {tokens_removed} expired tokens and {windows_removed} rate limit windows"
        )
    return {"tokens_removed": tokens_removed, "windows_removed": windows_removed}


async def run_periodic_sweep(backend: AuthBackend, interval_seconds: float) -> None:
    """Run ``sweep_expired`` forever on a coarse timer.

    A failed tick is logged and skipped; expired tokens are also rejected
    on read, so a missed sweep only delays deletion.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await sweep_expired(backend)
        except StoreUnavailableError:
            logger.warning("Token sweep skipped: store unavailable")
        except Exception as e:
            logger.error(f"Token sweep failed: {e!r}", exc_info=True)
