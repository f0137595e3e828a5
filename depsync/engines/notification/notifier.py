"""Downstream health-check notifier: ask king to recheck config health."""

from __future__ import annotations

import asyncio

import httpx
import structlog

log = structlog.get_logger("depsync.engine.notification")

_RETRY_DELAY = 1.0  # seconds


class HealthCheckNotifier:
    """POST ``{king_address}/admin/config-sync``; the result is recorded, never raised."""

    def __init__(
        self,
        king_address: str,
        *,
        timeout: float = 10.0,
        max_attempts: int = 2,
        retry_delay: float = _RETRY_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = f"{king_address.rstrip('/')}/admin/config-sync"
        self._timeout = timeout
        self._max_attempts = max(max_attempts, 1)
        self._retry_delay = retry_delay
        self._transport = transport

    async def notify(self, run_id: str | None = None) -> bool:
        payload = {"run_id": run_id} if run_id else None
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for attempt in range(self._max_attempts):
                try:
                    resp = await client.post(self.url, json=payload)
                except httpx.HTTPError as exc:
                    log.warning(
                        "notification.request_failed",
                        url=self.url,
                        error=str(exc) or type(exc).__name__,
                        attempt=attempt + 1,
                    )
                else:
                    if resp.is_success:
                        log.info("notification.accepted", url=self.url)
                        return True
                    log.warning(
                        "notification.rejected",
                        url=self.url,
                        status=resp.status_code,
                        attempt=attempt + 1,
                    )
                    # 4xx will not change on retry.
                    if resp.status_code < 500:
                        return False

                if attempt < self._max_attempts - 1:
                    await asyncio.sleep(self._retry_delay)
        return False
