"""Commit engine: remote API first, local git fallback."""

from depsync.engines.committer.base import (
    CommitFailure,
    CommitOutcome,
    CommitStrategy,
    CommitSuccess,
    CommitTarget,
    commit_message,
)
from depsync.engines.committer.chain import StrategyChain
from depsync.engines.committer.github_api import GitHubApiStrategy
from depsync.engines.committer.local_git import LocalGitStrategy

__all__ = [
    "CommitFailure",
    "CommitOutcome",
    "CommitStrategy",
    "CommitSuccess",
    "CommitTarget",
    "GitHubApiStrategy",
    "LocalGitStrategy",
    "StrategyChain",
    "commit_message",
]
