"""AI proposal engine.

This module turns repository context into validated analysis results:
- Issue analysis, PR review and CI failure diagnosis, each optionally
  carrying a Fix Proposal
- Issue triage (does the issue need more information?)
- Free-form documentation generation

Responses are constrained by per-task JSON schemas and validated before
they leave the engine.
"""

from src.repopilot.ai.models import (
    AnalysisResult,
    AnalysisTask,
    CIAnalysis,
    DocumentationResult,
    FileChange,
    FixProposal,
    IssueAnalysis,
    PRReview,
    TriageResult,
)
from src.repopilot.ai.context import ContextBundle, FileContext, render_structure
from src.repopilot.ai.engine import AIProviderError, AIResponseParseError, ProposalEngine

__all__ = [
    "AIProviderError",
    "AIResponseParseError",
    "AnalysisResult",
    "AnalysisTask",
    "CIAnalysis",
    "ContextBundle",
    "DocumentationResult",
    "FileChange",
    "FileContext",
    "FixProposal",
    "IssueAnalysis",
    "PRReview",
    "ProposalEngine",
    "TriageResult",
    "render_structure",
]
