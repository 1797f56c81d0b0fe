"""Orchestration procedures composing the GitHub client and the engine.

- AnalysisPipelines: issue analysis, PR review, CI failure analysis,
  documentation and fix publication for a user session
- TriageManager: triage pass and weekly follow-up scan
- ResultStore: persistence of analysis results
"""

from src.repopilot.pipelines.analysis import AnalysisPipelines, PullRequestReviewOutcome
from src.repopilot.pipelines.store import InMemoryResultStore, ResultStore
from src.repopilot.pipelines.triage import ScanItemResult, ScanReport, ScanStatus, TriageManager

__all__ = [
    "AnalysisPipelines",
    "InMemoryResultStore",
    "PullRequestReviewOutcome",
    "ResultStore",
    "ScanItemResult",
    "ScanReport",
    "ScanStatus",
    "TriageManager",
]
