"""Primary strategy: commit through the GitHub contents API, no checkout needed."""

from __future__ import annotations

import httpx
import structlog

from depsync.core.github import GitHubClient, RateLimitError
from depsync.engines.committer.base import CommitTarget
from depsync.exceptions import CommitError, FileReadError

log = structlog.get_logger("depsync.engine.committer")


def _classify(exc: Exception) -> CommitError:
    if isinstance(exc, RateLimitError):
        return CommitError("rate_limit", str(exc))
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        detail = _api_message(exc.response)
        if status in (401, 403):
            return CommitError("auth", f"HTTP {status}: {detail}")
        if status == 404:
            return CommitError("not_found", f"HTTP {status}: {detail}")
        if status in (409, 422):
            return CommitError("conflict", f"HTTP {status}: {detail}")
        return CommitError("api", f"HTTP {status}: {detail}")
    if isinstance(exc, httpx.TransportError):
        return CommitError("unavailable", f"{type(exc).__name__}: {exc}")
    return CommitError("api", str(exc))


def _api_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase


class GitHubApiStrategy:
    """GET the current blob SHA, then PUT the new content against the branch.

    The PUT is sent once. When it times out, the file is read back: if it
    already holds the new content the write landed and the commit touching
    it is reported, otherwise the attempt fails with kind ``timeout``.
    """

    name = "api"

    def __init__(self, github: GitHubClient) -> None:
        self._github = github

    def unavailable_reason(self, target: CommitTarget) -> str | None:
        if not self._github.authenticated:
            return "no GitHub token configured"
        return None

    async def commit(self, target: CommitTarget, content: str, message: str) -> str:
        slug = target.repo.slug
        path = target.file_path
        branch = target.repo.branch
        params = {"ref": branch} if branch else None
        try:
            current = await self._github.get(f"/repos/{slug}/contents/{path}", params=params)
            blob_sha = current.get("sha") if isinstance(current, dict) else None
            if target.blob_sha and blob_sha and blob_sha != target.blob_sha:
                raise CommitError("conflict", f"{slug}/{path} changed since it was scanned")
        except CommitError:
            raise
        except (httpx.HTTPError, RateLimitError, ValueError) as exc:
            raise _classify(exc) from exc

        log.debug("committer.blob_sha", repo=slug, file=path, blob_sha=blob_sha)
        try:
            return await self._github.put_file(slug, path, content, message, sha=blob_sha, branch=branch)
        except httpx.TimeoutException as exc:
            return await self._confirm_write(target, content, exc)
        except (httpx.HTTPError, RateLimitError, KeyError, ValueError) as exc:
            raise _classify(exc) from exc

    async def _confirm_write(self, target: CommitTarget, content: str, timeout: Exception) -> str:
        """Decide whether a request that timed out still wrote *content*."""
        slug = target.repo.slug
        path = target.file_path
        branch = target.repo.branch
        log.warning("committer.write_timeout", repo=slug, file=path)
        try:
            remote = await self._github.get_file(slug, path, ref=branch)
            commit_sha = None
            if remote.content == content:
                commit_sha = await self._github.latest_commit_sha(slug, path, branch)
        except (FileReadError, httpx.HTTPError, RateLimitError, ValueError) as exc:
            raise CommitError(
                "timeout", f"write to {slug}/{path} timed out and could not be confirmed: {exc}"
            ) from timeout

        if commit_sha is None:
            raise CommitError("timeout", f"write to {slug}/{path} timed out before it landed") from timeout
        log.info("committer.write_confirmed", repo=slug, file=path, commit=commit_sha)
        return commit_sha
