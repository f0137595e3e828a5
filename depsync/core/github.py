"""Async GitHub REST client with rate-limit handling and retries."""

from __future__ import annotations

import asyncio
import base64
import os
import time
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from depsync.exceptions import FileReadError

log = structlog.get_logger("depsync.github")

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_MAX_RATE_LIMIT_WAIT = 60.0  # seconds


class RateLimitError(Exception):
    """Raised when GitHub rate limit is exhausted and we need to wait."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")


@dataclass(frozen=True)
class RemoteFile:
    """A file read through the contents API."""

    path: str
    content: str
    sha: str


class GitHubClient:
    """Thin async wrapper around the GitHub REST API."""

    def __init__(
        self,
        token: str | None = None,
        *,
        timeout: float = 30.0,
        max_retries: int = _MAX_RETRIES,
        retry_base_delay: float = _RETRY_BASE_DELAY,
        max_rate_limit_wait: float = _MAX_RATE_LIMIT_WAIT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_token = token or os.environ.get("GITHUB_TOKEN")
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if resolved_token:
            headers["Authorization"] = f"token {resolved_token}"
        self.authenticated = bool(resolved_token)
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._max_rate_limit_wait = max_rate_limit_wait
        # Monotonic deadline set when a response reports an exhausted quota.
        self._rate_limited_until = 0.0
        self._client = httpx.AsyncClient(
            base_url="https://api.github.com",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Single-resource GET, returns parsed JSON."""
        response = await self._request_with_retry("GET", path, params=params)
        await self._check_rate_limit(response)
        return response.json()

    async def put(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """PUT a JSON payload.

        Not retried on 5xx or timeout: the write may already have landed,
        and a replay would then fail on the stale blob SHA.
        """
        response = await self._request_with_retry(
            "PUT", path, json=payload, retry_server_errors=False, retry_timeouts=False
        )
        await self._check_rate_limit(response)
        return response.json()

    async def get_file(self, slug: str, file_path: str, ref: str | None = None) -> RemoteFile:
        """Read *file_path* from *slug* via the contents API.

        Raises :class:`FileReadError` when the file is missing, is not a
        regular file, or the request fails.
        """
        params = {"ref": ref} if ref else None
        try:
            data = await self.get(f"/repos/{slug}/contents/{file_path}", params=params)
        except (httpx.HTTPError, RateLimitError) as exc:
            raise FileReadError(f"cannot read {slug}/{file_path}: {_describe(exc)}") from exc

        if not isinstance(data, dict) or data.get("type") != "file":
            raise FileReadError(f"{slug}/{file_path} is not a regular file")

        raw = data.get("content") or ""
        try:
            content = base64.b64decode(raw).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise FileReadError(f"cannot decode {slug}/{file_path}: {exc}") from exc
        return RemoteFile(path=file_path, content=content, sha=data.get("sha", ""))

    async def put_file(
        self,
        slug: str,
        file_path: str,
        content: str,
        message: str,
        *,
        sha: str | None,
        branch: str | None = None,
    ) -> str:
        """Create or update *file_path* and return the new commit SHA."""
        payload: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if sha:
            payload["sha"] = sha
        if branch:
            payload["branch"] = branch
        data = await self.put(f"/repos/{slug}/contents/{file_path}", payload)
        return data["commit"]["sha"]

    async def latest_commit_sha(self, slug: str, file_path: str, branch: str | None = None) -> str | None:
        """SHA of the newest commit touching *file_path*, or ``None`` if there is none."""
        params: dict[str, Any] = {"path": file_path, "per_page": 1}
        if branch:
            params["sha"] = branch
        response = await self._request_with_retry("GET", f"/repos/{slug}/commits", params=params)
        await self._check_rate_limit(response)
        commits = response.json()
        if not isinstance(commits, list) or not commits:
            return None
        return commits[0].get("sha") or None

    async def get_release_notes(self, slug: str, version: str) -> str | None:
        """Return the body of the release tagged ``v{version}`` or ``{version}``, if any."""
        for tag in (f"v{version}", version):
            try:
                data = await self.get(f"/repos/{slug}/releases/tags/{tag}")
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code == 404:
                    continue
                raise
            return data.get("body") or None
        return None

    # ── internal ───────────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_server_errors: bool = True,
        retry_timeouts: bool = True,
    ) -> httpx.Response:
        """Request with exponential backoff on 5xx, 403 rate-limit, and timeout errors.

        Rate-limit waits longer than ``max_rate_limit_wait`` are not slept
        through: :class:`RateLimitError` is raised at once instead.
        """
        last_exc: Exception | None = None
        for attempt in range(self._max_retries):
            await self._wait_for_quota()
            try:
                resp = await self._client.request(method, url, params=params, json=json)

                # 403/429 with rate-limit headers → sleep and retry
                if resp.status_code in (403, 429) and self._is_rate_limited(resp):
                    wait = self._get_rate_limit_wait(resp)
                    log.warning(
                        "github.rate_limit",
                        url=url,
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=self._max_retries,
                    )
                    if wait > self._max_rate_limit_wait:
                        raise RateLimitError(wait)
                    last_exc = RateLimitError(wait)
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(wait)
                    continue

                if resp.status_code < 500 or not retry_server_errors:
                    resp.raise_for_status()
                    return resp

                # 5xx: retry
                log.warning(
                    "github.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as exc:
                log.warning(
                    "github.timeout",
                    url=url,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                )
                if not retry_timeouts:
                    raise
                last_exc = exc

            if attempt < self._max_retries - 1:
                delay = self._retry_base_delay * (2**attempt)
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    async def _check_rate_limit(self, response: httpx.Response) -> None:
        """Remember when the quota resets if remaining == 0.

        The wait happens before the next request, so a response that used
        the last unit of quota is still returned to its caller.
        """
        remaining = self._parse_header_int(response.headers.get("X-RateLimit-Remaining"))
        if remaining is not None and remaining == 0:
            wait = self._get_rate_limit_wait(response)
            log.warning("github.rate_limit_exhausted", wait_seconds=wait)
            self._rate_limited_until = time.monotonic() + wait

    async def _wait_for_quota(self) -> None:
        """Sleep until the recorded quota reset, or raise if that is too far off."""
        wait = self._rate_limited_until - time.monotonic()
        if wait <= 0:
            return
        if wait > self._max_rate_limit_wait:
            raise RateLimitError(int(wait) + 1)
        log.info("github.rate_limit_wait", wait_seconds=round(wait, 1))
        await asyncio.sleep(wait)
        self._rate_limited_until = 0.0

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        """Check if a 403/429 response is due to rate limiting."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None:
            try:
                return int(remaining) == 0
            except (ValueError, TypeError):
                pass
        # GitHub also uses Retry-After header for abuse rate limits
        return "Retry-After" in response.headers

    @staticmethod
    def _get_rate_limit_wait(response: httpx.Response) -> int:
        """Calculate how long to wait based on rate-limit headers."""
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(int(retry_after), 1)
            except (ValueError, TypeError):
                pass
        reset_ts = response.headers.get("X-RateLimit-Reset")
        if reset_ts is not None:
            try:
                return max(int(reset_ts) - int(time.time()), 1)
            except (ValueError, TypeError):
                pass
        return 60  # conservative fallback

    @staticmethod
    def _parse_header_int(value: str | None) -> int | None:
        """Safely parse an integer header value."""
        if value is None:
            return None
        try:
            return int(value)
        except (ValueError, TypeError):
            return None


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return str(exc) or type(exc).__name__
