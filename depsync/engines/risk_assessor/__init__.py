"""Risk assessor engine: advisory LLM verdict over a run's version bumps."""

from depsync.engines.risk_assessor.assessor import (
    NO_CHANGES_SUMMARY,
    RiskAssessor,
    RiskVerdict,
    gate_allows,
    parse_severity,
)

__all__ = ["NO_CHANGES_SUMMARY", "RiskAssessor", "RiskVerdict", "gate_allows", "parse_severity"]
