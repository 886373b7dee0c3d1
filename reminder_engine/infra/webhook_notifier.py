from __future__ import annotations

import logging

import httpx

from reminder_engine.core.models import ReminderRecord
from reminder_engine.infra.resilience import RetryPolicy, is_transient_error, retry_async

LOGGER = logging.getLogger(__name__)


class _RetryableStatus(Exception):
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"retryable status {status_code}")


def _is_retryable(exc: Exception) -> bool:
    return isinstance(exc, _RetryableStatus) or is_transient_error(exc)


class WebhookNotifier:
    """Hands reminders to the email subsystem over HTTP.

    A 2xx response is an acknowledged delivery. 5xx, 429 and transport
    errors are retried within the attempt and then reported as failure. 4xx
    responses are permanent; they count as delivered only when
    ``permanent_as_delivered`` is set, otherwise the reminder keeps retrying
    on every tick.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 5.0,
        retry_policy: RetryPolicy | None = None,
        permanent_as_delivered: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._retry_policy = retry_policy or RetryPolicy()
        self._permanent_as_delivered = permanent_as_delivered
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def attempt_delivery(self, record: ReminderRecord, recipient_id: str) -> bool:
        payload = {
            "event_id": record.event_id,
            "offset_kind": record.offset_kind,
            "recipient_id": recipient_id,
            "firing_at": record.firing_at.isoformat(),
            "start_at": record.start_at.isoformat(),
            "time_zone": record.time_zone,
        }

        async def _post() -> httpx.Response:
            response = await self._client.post(self._url, json=payload)
            if response.status_code >= 500 or response.status_code == 429:
                raise _RetryableStatus(response.status_code)
            return response

        try:
            response = await retry_async(
                _post,
                policy=self._retry_policy,
                name="webhook.deliver",
                is_retryable=_is_retryable,
                logger=LOGGER,
            )
        except _RetryableStatus as exc:
            LOGGER.warning(
                "Webhook delivery failed: %s recipient_id=%s status=%s",
                record.describe(),
                recipient_id,
                exc.status_code,
            )
            return False
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "Webhook delivery failed: %s recipient_id=%s error=%s",
                record.describe(),
                recipient_id,
                type(exc).__name__,
            )
            return False
        if response.is_success:
            return True
        if self._permanent_as_delivered:
            LOGGER.error(
                "Webhook rejected reminder permanently, dropping: %s recipient_id=%s status=%s",
                record.describe(),
                recipient_id,
                response.status_code,
            )
            return True
        LOGGER.warning(
            "Webhook rejected reminder: %s recipient_id=%s status=%s",
            record.describe(),
            recipient_id,
            response.status_code,
        )
        return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
