"""crates.io registry client: latest stable version lookups with retries."""

from __future__ import annotations

import asyncio

import httpx
import structlog

from depsync.config import DEFAULT_REGISTRY_URL, DEFAULT_USER_AGENT
from depsync.exceptions import ResolutionError

log = structlog.get_logger("depsync.engine.resolver")

_RETRY_BASE_DELAY = 1.0  # seconds


class RegistryClient:
    """Query the registry for a crate's ``max_stable_version``.

    crates.io computes ``max_stable_version`` excluding pre-releases and
    yanked versions, so no filtering happens client-side.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_base_delay: float = _RETRY_BASE_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        # crates.io rejects requests without a User-Agent.
        self._client = httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def latest_stable_version(self, name: str) -> str | None:
        """Return the latest stable version of *name*, or ``None`` if the registry has none.

        Retries transport errors, timeouts, 429 and 5xx with exponential
        backoff; raises :class:`ResolutionError` once retries are exhausted
        or on any other non-success status.
        """
        url = f"{self._base_url}/{name}"
        reason = "no attempt made"
        for attempt in range(self._max_retries):
            try:
                resp = await self._client.get(url)
            except httpx.TransportError as exc:
                reason = f"{type(exc).__name__}: {exc}"
                log.warning(
                    "registry.transport_error",
                    package=name,
                    error=reason,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                )
            else:
                if resp.status_code == 404:
                    return None
                if resp.status_code == 429 or resp.status_code >= 500:
                    reason = f"registry returned {resp.status_code}"
                    log.warning(
                        "registry.server_error",
                        package=name,
                        status=resp.status_code,
                        attempt=attempt + 1,
                        max_retries=self._max_retries,
                    )
                elif resp.status_code != 200:
                    raise ResolutionError(name, f"registry returned {resp.status_code}")
                else:
                    return self._parse(name, resp)

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_base_delay * (2**attempt))

        raise ResolutionError(name, f"{reason} (after {self._max_retries} attempts)")

    @staticmethod
    def _parse(name: str, resp: httpx.Response) -> str | None:
        try:
            data = resp.json()
        except ValueError as exc:
            raise ResolutionError(name, f"unparseable registry response: {exc}") from exc
        info = data.get("crate") if isinstance(data, dict) else None
        if not isinstance(info, dict):
            raise ResolutionError(name, "registry response has no 'crate' object")
        version = info.get("max_stable_version")
        return version or None
