"""Run a delivery coroutine from synchronous code."""

import asyncio
import contextlib
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

__all__ = ["run_until_delivered"]


def _cancel_leftover_tasks(loop: asyncio.AbstractEventLoop) -> None:
    pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
    if not pending:
        return
    logger.debug("Cancelling %d leftover task(s) before closing the loop", len(pending))
    for task in pending:
        task.cancel()
    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))


def run_until_delivered(coro: Coroutine[Any, Any, T], shutdown_timeout: float = 10.0) -> T:
    """Run ``coro`` on a private event loop and tear the loop down.

    Unlike asyncio.run(), the default executor shutdown is bounded by
    ``shutdown_timeout`` so a stuck DNS lookup thread cannot keep a CLI
    process alive after delivery finished. Background delivery tasks still
    running when ``coro`` returns are cancelled.

    Args:
        coro: Coroutine to execute.
        shutdown_timeout: Seconds to wait for the default executor.

    Returns:
        Result of the coroutine.

    Raises:
        Whatever the coroutine raises.

    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        try:
            _cancel_leftover_tasks(loop)
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            loop.run_until_complete(
                asyncio.wait_for(loop.shutdown_default_executor(), timeout=shutdown_timeout)
            )
        except TimeoutError:
            logger.warning("Executor shutdown timed out after %.1fs", shutdown_timeout)
        except Exception as e:
            logger.debug("Event loop shutdown error (ignored): %s", e)
        finally:
            asyncio.set_event_loop(None)
            loop.close()
