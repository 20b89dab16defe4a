"""Exponential backoff retry for event sends.

Shared retry wrapper for transport sends. The transport decides whether a
rejection is retryable; this module only counts attempts and sleeps.

Delay before attempt n (n >= 2) is base_delay * 2 ** (n - 2), so with the
default 10 ms base the waits are 10 ms, 20 ms, 40 ms, ...
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from run_events.core.config import RetryConfig
from run_events.delivery.base import SendResult

logger = logging.getLogger(__name__)

__all__ = ["backoff_delay", "send_with_backoff"]


def backoff_delay(policy: RetryConfig, attempt: int) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    return policy.base_delay * (2 ** (attempt - 1))


async def send_with_backoff(
    send_fn: Callable[[], Awaitable[SendResult]],
    *,
    policy: RetryConfig,
    label: str,
) -> SendResult:
    """Invoke a send coroutine with exponential backoff.

    Args:
        send_fn: Zero-argument callable returning a fresh send coroutine.
        policy: Backoff base delay and maximum attempt count.
        label: Identifies the event in log lines (e.g., event type and subject).

    Returns:
        The acknowledged result, or the last rejection once attempts are
        exhausted or a rejection is not retryable.

    Raises:
        asyncio.CancelledError: If cancelled while sending or sleeping. No
            further attempts are made.

    Examples:
        >>> result = await send_with_backoff(
        ...     lambda: transport.send(envelope),
        ...     policy=RetryConfig(base_delay_ms=10, max_attempts=10),
        ...     label="cd.taskrun.started.v1 build-1",
        ... )

    """
    attempt = 0

    while True:
        attempt += 1

        try:
            result = await send_fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Transport raised while sending %s (attempt %d)", label, attempt)
            return SendResult.rejected(f"{type(e).__name__}: {e}", retryable=False)

        if result.acknowledged:
            if attempt > 1:
                logger.debug("Sent %s after %d attempts", label, attempt)
            return result

        if not result.retryable:
            logger.debug("Non-retryable rejection for %s: %s", label, result.error)
            return result

        if attempt >= policy.max_attempts:
            logger.debug(
                "Giving up on %s after %d attempts (max %d configured)",
                label,
                attempt,
                policy.max_attempts,
            )
            return result

        delay = backoff_delay(policy, attempt)
        logger.debug(
            "Send of %s rejected (attempt %d, %d remaining): %s. Retrying in %.3fs",
            label,
            attempt,
            policy.max_attempts - attempt,
            result.error[:100],
            delay,
        )
        await asyncio.sleep(delay)
