"""Fallback strategy: write into the local checkout, then git add/commit/push."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from depsync.engines.committer.base import CommitTarget
from depsync.exceptions import CommitError

log = structlog.get_logger("depsync.engine.committer")

_AUTH_MARKERS = ("authentication failed", "permission denied", "could not read username")
_REJECT_MARKERS = ("[rejected]", "non-fast-forward", "failed to push")


class LocalGitStrategy:
    name = "local"

    def __init__(self, timeout: float = 120.0) -> None:
        self._timeout = timeout

    def unavailable_reason(self, target: CommitTarget) -> str | None:
        if not target.repo.has_checkout():
            return f"no local checkout at {target.repo.local_path}"
        return None

    async def commit(self, target: CommitTarget, content: str, message: str) -> str:
        """Commit *content* as the only change, then push.

        Changes the operator already staged stay staged and out of the
        commit. If the commit or the push fails, HEAD, the index entry and
        the file on disk are put back the way they were.
        """
        base = target.repo.local_path
        if not (base / ".git").exists():
            raise CommitError("no_checkout", f"no local checkout at {base}")

        full_path = base / target.file_path
        prior_head = (await self._git(base, "rev-parse", "HEAD")).strip()
        try:
            original = await asyncio.to_thread(_read, full_path)
            await asyncio.to_thread(_write, full_path, content)
        except OSError as exc:
            raise CommitError("git", f"write {full_path}: {exc}") from exc

        try:
            await self._git(base, "add", "--", target.file_path)
            await self._git(base, "commit", "--only", "-m", message, "--", target.file_path)
        except CommitError:
            await self._restore(base, target.file_path, original)
            raise
        try:
            await self._git(base, "push")
        except CommitError:
            await self._restore(base, target.file_path, original, prior_head)
            raise

        sha = (await self._git(base, "rev-parse", "--short", "HEAD")).strip()
        log.debug("committer.local_pushed", repo=target.repo.slug, file=target.file_path, sha=sha)
        return sha

    async def _restore(
        self, base: Path, file_path: str, original: bytes | None, prior_head: str | None = None
    ) -> None:
        """Undo a failed attempt; problems here are logged, the caller re-raises."""
        try:
            if prior_head:
                await self._git(base, "reset", "-q", "--soft", prior_head)
            await self._git(base, "reset", "-q", "--", file_path)
            await asyncio.to_thread(_put_back, base / file_path, original)
        except (CommitError, OSError) as exc:
            log.error("committer.restore_failed", path=str(base), file=file_path, error=str(exc))
        else:
            log.info("committer.restored", path=str(base), file=file_path, head=prior_head)

    async def _git(self, cwd: Path, *args: str) -> str:
        """Run a git subcommand in *cwd*; map failures to :class:`CommitError`."""
        try:
            proc = await asyncio.create_subprocess_exec(
                "git",
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CommitError("git", f"cannot spawn git: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise CommitError("timeout", f"git {args[0]} timed out after {self._timeout:g}s") from None

        if proc.returncode != 0:
            err = stderr.decode(errors="replace").strip() or stdout.decode(errors="replace").strip()
            raise CommitError(_classify(args[0], err), f"git {args[0]} exited {proc.returncode}: {err}")
        return stdout.decode(errors="replace")


def _classify(subcommand: str, stderr: str) -> str:
    lowered = stderr.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return "auth"
    if subcommand == "push" and any(marker in lowered for marker in _REJECT_MARKERS):
        return "push_rejected"
    return "git"


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Bytes: line endings stay exactly as scanned.
    path.write_bytes(content.encode("utf-8"))


def _read(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


def _put_back(path: Path, original: bytes | None) -> None:
    if original is None:
        path.unlink(missing_ok=True)
    else:
        path.write_bytes(original)
