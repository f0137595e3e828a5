"""Report engine: the RunReport schema and its aggregation."""

from depsync.engines.report.aggregator import FilePlan, build_report
from depsync.engines.report.models import CommittedEntry, ErrorEntry, PlannedCommit, RunReport

__all__ = ["CommittedEntry", "ErrorEntry", "FilePlan", "PlannedCommit", "RunReport", "build_report"]
