"""Ordered commit strategies, tried until one succeeds."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from depsync.engines.committer.base import CommitStrategy, CommitSuccess, CommitTarget
from depsync.exceptions import CommitError

log = structlog.get_logger("depsync.engine.committer")


class StrategyChain:
    """Try each strategy in order; raise only when every one failed or was unavailable.

    The raised :class:`CommitError` takes the kind of the last strategy that
    was actually attempted and lists every strategy's reason, most recent
    first.
    """

    def __init__(self, strategies: Sequence[CommitStrategy]) -> None:
        if not strategies:
            raise ValueError("StrategyChain needs at least one strategy")
        self._strategies = list(strategies)

    @property
    def strategies(self) -> list[CommitStrategy]:
        return list(self._strategies)

    async def commit(self, target: CommitTarget, content: str, message: str) -> CommitSuccess:
        reasons: list[str] = []
        last: CommitError | None = None

        for strategy in self._strategies:
            unavailable = strategy.unavailable_reason(target)
            if unavailable is not None:
                log.info(
                    "committer.strategy_unavailable",
                    repo=target.repo.slug,
                    file=target.file_path,
                    strategy=strategy.name,
                    reason=unavailable,
                )
                reasons.append(f"{strategy.name} unavailable: {unavailable}")
                continue

            try:
                commit_id = await strategy.commit(target, content, message)
            except CommitError as exc:
                last = exc
            except Exception as exc:
                last = CommitError("unexpected", f"{type(exc).__name__}: {exc}")
            else:
                log.info(
                    "committer.committed",
                    repo=target.repo.slug,
                    file=target.file_path,
                    strategy=strategy.name,
                    commit_id=commit_id,
                )
                return CommitSuccess(commit_id=commit_id, strategy=strategy.name)

            log.warning(
                "committer.strategy_failed",
                repo=target.repo.slug,
                file=target.file_path,
                strategy=strategy.name,
                kind=last.kind,
                error=last.message,
            )
            reasons.append(f"{strategy.name} failed: {last}")

        kind = last.kind if last is not None else "unavailable"
        raise CommitError(kind, "; ".join(reversed(reasons)))
