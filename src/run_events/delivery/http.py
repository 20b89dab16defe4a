"""HTTP transport posting CloudEvents in structured JSON mode.

Retry classification:
- 2xx: acknowledged
- 429 and 5xx: retryable rejection
- httpx.RequestError (connection errors, timeouts): retryable rejection
- other statuses: non-retryable rejection
"""

import logging

import httpx

from run_events.delivery.base import SendResult, Transport
from run_events.delivery.masking import mask_url
from run_events.events.envelope import CloudEventEnvelope

logger = logging.getLogger(__name__)

__all__ = ["CLOUDEVENTS_JSON", "HttpTransport"]

CLOUDEVENTS_JSON = "application/cloudevents+json; charset=utf-8"

RETRYABLE_STATUS_CODES = frozenset({429})


def _is_retryable_error(status_code: int | None, exception: Exception | None) -> bool:
    """Check if a send failure is worth retrying.

    Args:
        status_code: HTTP status code from the sink, if a response arrived.
        exception: Exception raised by httpx, if any.

    Returns:
        True for network errors, timeouts, 429 and 5xx responses.

    """
    if exception is not None:
        return isinstance(exception, httpx.RequestError)
    if status_code is None:
        return False
    return status_code in RETRYABLE_STATUS_CODES or 500 <= status_code < 600


class HttpTransport(Transport):
    """Send envelopes to a CloudEvents HTTP sink.

    One httpx.AsyncClient is created lazily and shared by all sends; call
    aclose() when the transport is no longer needed.
    """

    def __init__(
        self,
        sink_url: str,
        *,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._sink_url = sink_url
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._client = client

    def __repr__(self) -> str:
        return f"HttpTransport(sink_url={mask_url(self._sink_url)!r})"

    @property
    def transport_name(self) -> str:
        return "http"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def send(self, envelope: CloudEventEnvelope) -> SendResult:
        headers = {"Content-Type": CLOUDEVENTS_JSON, **self._headers}
        try:
            response = await self._get_client().post(
                self._sink_url,
                json=envelope.to_structured(),
                headers=headers,
            )
        except httpx.HTTPError as e:
            retryable = _is_retryable_error(None, e)
            logger.debug(
                "HTTP error sending %s to %s: %s", envelope.type.value, mask_url(self._sink_url), e
            )
            return SendResult.rejected(f"{type(e).__name__}: {e}", retryable=retryable)

        if response.is_success:
            logger.debug(
                "Sink %s accepted %s (HTTP %d)",
                mask_url(self._sink_url),
                envelope.id,
                response.status_code,
            )
            return SendResult.ack()

        retryable = _is_retryable_error(response.status_code, None)
        error = f"HTTP {response.status_code}: {response.text[:200]}"
        return SendResult.rejected(error, retryable=retryable)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
