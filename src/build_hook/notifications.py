"""Run-completion webhook notifications.

Posts finished BuildRun results to the endpoints listed under
``app.notifications``:
- Event filtering by run status (succeeded, partial_failure, failed, aborted)
- HTTP delivery with configurable retry and exponential backoff
- JSON payload carrying the full BuildRun result

Delivery failures are logged and returned; they never change the run result.

Example:
    >>> from build_hook.schemas.config import NotificationConfig
    >>> notifier = WebhookNotifier(
    ...     configs=[NotificationConfig(url="https://hooks.example.com/build")]
    ... )
    >>> results = await notifier.notify_all(run_result)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from build_hook.schemas.config import NotificationConfig
from build_hook.schemas.run import BuildRunResult
from build_hook.telemetry.tracer_factory import get_tracer

# Exponential backoff configuration
BACKOFF_BASE_SECONDS = 1.0
"""Base delay for exponential backoff (doubles each retry)."""

EVENT_TYPE = "build_run_finished"

logger = structlog.get_logger(__name__)


class WebhookNotificationResult(BaseModel):
    """Result of one webhook delivery.

    Attributes:
        success: Whether the notification was delivered.
        status_code: HTTP status of the last response, if any was received.
        url: Target webhook URL.
        error: Error message if delivery failed.
        attempts: Number of delivery attempts made.

    Examples:
        >>> WebhookNotificationResult(success=True, status_code=200, url="https://x").attempts
        1
    """

    model_config = ConfigDict(extra="forbid")

    success: bool = Field(..., description="Whether notification delivered successfully")
    status_code: int | None = Field(default=None, description="HTTP response status code")
    url: str = Field(..., description="Target webhook URL")
    error: str | None = Field(default=None, description="Error message if failed")
    attempts: int = Field(default=1, ge=1, description="Number of delivery attempts")


class WebhookNotifier:
    """Send finished BuildRun results to configured webhooks.

    Args:
        configs: Webhook endpoints. An empty list makes every call a no-op.
    """

    def __init__(self, configs: Sequence[NotificationConfig]) -> None:
        self.configs = list(configs)

    @staticmethod
    def should_notify(config: NotificationConfig, result: BuildRunResult) -> bool:
        """Whether ``config`` subscribes to the run's status."""
        return result.status.value in config.events

    @staticmethod
    def build_payload(result: BuildRunResult) -> dict[str, Any]:
        """JSON payload for a finished run."""
        return {"event_type": EVENT_TYPE, **result.model_dump(mode="json")}

    async def notify(
        self,
        config: NotificationConfig,
        result: BuildRunResult,
    ) -> WebhookNotificationResult:
        """Deliver one notification, retrying 5xx responses and transport errors.

        Client errors (4xx) are not retried.

        Args:
            config: Target webhook.
            result: Finished run.

        Returns:
            WebhookNotificationResult with delivery status.
        """
        url = config.url
        payload = self.build_payload(result)
        log = logger.bind(url=url, slug=result.project_slug, run_id=result.run_id)

        with get_tracer(__name__).start_as_current_span("build_hook.notify") as span:
            span.set_attribute("build_hook.webhook.url", url)
            span.set_attribute("build_hook.webhook.max_retries", config.retry_count)

            start_time = time.monotonic()
            # 1 initial attempt + retry_count retries
            max_attempts = 1 + config.retry_count
            last_status_code: int | None = None
            last_error: str | None = None

            for attempt in range(1, max_attempts + 1):
                try:
                    async with httpx.AsyncClient(timeout=config.timeout_seconds) as client:
                        response = await client.post(
                            url=url,
                            json=payload,
                            headers=dict(config.headers),
                        )
                except httpx.TimeoutException:
                    last_error = "Request timed out"
                except httpx.RequestError as e:
                    last_error = str(e) or type(e).__name__
                else:
                    last_status_code = response.status_code
                    if response.status_code < 400:
                        duration_ms = int((time.monotonic() - start_time) * 1000)
                        span.set_attribute("build_hook.webhook.attempts", attempt)
                        span.set_attribute("build_hook.webhook.success", True)
                        log.info(
                            "webhook_notification_sent",
                            status_code=response.status_code,
                            attempts=attempt,
                            duration_ms=duration_ms,
                        )
                        return WebhookNotificationResult(
                            success=True,
                            status_code=response.status_code,
                            url=url,
                            attempts=attempt,
                        )
                    if response.status_code < 500:
                        last_error = f"Client error: {response.status_code}"
                        max_attempts = attempt
                        break
                    last_error = f"Server error: {response.status_code}"

                if attempt < max_attempts:
                    # Exponential backoff: 1s, 2s, 4s, ...
                    backoff_delay = BACKOFF_BASE_SECONDS * (2 ** (attempt - 1))
                    log.warning(
                        "webhook_notification_retry",
                        error=last_error,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        backoff_seconds=backoff_delay,
                    )
                    await asyncio.sleep(backoff_delay)

            duration_ms = int((time.monotonic() - start_time) * 1000)
            span.set_attribute("build_hook.webhook.attempts", max_attempts)
            span.set_attribute("build_hook.webhook.success", False)
            log.error(
                "webhook_notification_failed",
                status_code=last_status_code,
                error=last_error,
                attempts=max_attempts,
                duration_ms=duration_ms,
            )
            return WebhookNotificationResult(
                success=False,
                status_code=last_status_code,
                url=url,
                error=last_error,
                attempts=max_attempts,
            )

    async def notify_all(self, result: BuildRunResult) -> list[WebhookNotificationResult]:
        """Notify every webhook subscribed to the run's status.

        A failing webhook does not prevent delivery to the others.

        Returns:
            One result per notified webhook; empty when none subscribe.
        """
        results: list[WebhookNotificationResult] = []
        for config in self.configs:
            if not self.should_notify(config, result):
                logger.debug(
                    "webhook_skipped",
                    url=config.url,
                    status=result.status.value,
                    reason="status_not_subscribed",
                )
                continue
            results.append(await self.notify(config, result))
        return results


__all__ = ["BACKOFF_BASE_SECONDS", "WebhookNotificationResult", "WebhookNotifier"]
