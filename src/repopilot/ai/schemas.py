"""Strict response schemas sent with each structured analysis request.

The schemas are plain JSON-schema dictionaries with enum-constrained
string fields and a nested object schema for ``fix``. They mirror the
result models in ai/models.py field for field (camelCase on the wire).
"""

from typing import Any, Dict, Optional

from src.repopilot.ai.models import AnalysisTask, Complexity, ReviewStatus


FIX_REQUIRED_FIELDS = ["commitMessage", "branchName", "prTitle", "prBody", "changes"]


def fix_schema(branch_example: str) -> Dict[str, Any]:
    """Schema of the nested Fix Proposal object."""
    return {
        "type": "object",
        "properties": {
            "commitMessage": {
                "type": "string",
                "description": (
                    "A concise commit message for the changes, following "
                    "conventional commit standards (e.g., 'fix: ...')."
                ),
            },
            "branchName": {
                "type": "string",
                "description": (
                    "A descriptive and unique branch name for the new PR, "
                    f"e.g., '{branch_example}'."
                ),
            },
            "prTitle": {
                "type": "string",
                "description": "A title for the new Pull Request that implements the fix.",
            },
            "prBody": {
                "type": "string",
                "description": (
                    "A markdown body for the new Pull Request, explaining "
                    "what was changed and why."
                ),
            },
            "changes": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "filePath": {
                            "type": "string",
                            "description": "The repository path of the file to modify.",
                        },
                        "newContent": {
                            "type": "string",
                            "description": "The full, complete, new content of the file after the fix.",
                        },
                    },
                    "required": ["filePath", "newContent"],
                },
            },
        },
        "required": FIX_REQUIRED_FIELDS,
    }


SHOULD_PROPOSE_FIX = {
    "type": "boolean",
    "description": "True if a confident fix can be proposed.",
}


def issue_analysis_schema(issue_number: int) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "analysis": {
                "type": "string",
                "description": "Brief analysis of the issue context.",
            },
            "suggestedFix": {
                "type": "string",
                "description": "Markdown formatted implementation plan or code snippet.",
            },
            "complexity": {
                "type": "string",
                "enum": [c.value for c in Complexity],
            },
            "shouldProposeFix": SHOULD_PROPOSE_FIX,
            "fix": fix_schema(f"ai-fix/issue-{issue_number}-summary"),
        },
        "required": ["analysis", "suggestedFix", "complexity", "shouldProposeFix"],
    }


def pr_review_schema(pr_number: int) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "status": {
                "type": "string",
                "enum": [s.value for s in ReviewStatus],
            },
            "feedback": {
                "type": "string",
                "description": "Detailed markdown feedback for the developer.",
            },
            "score": {
                "type": "number",
                "description": "A quality score from 0 to 100.",
            },
            "criticalIssues": {
                "type": "array",
                "items": {"type": "string"},
            },
            "shouldProposeFix": SHOULD_PROPOSE_FIX,
            "fix": fix_schema(f"ai-fix/pr-{pr_number}-issue-summary"),
        },
        "required": ["status", "feedback", "score", "shouldProposeFix"],
    }


def ci_failure_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "analysis": {
                "type": "string",
                "description": "Brief analysis of why the workflow failed.",
            },
            "suggestedFix": {
                "type": "string",
                "description": "Markdown formatted implementation plan or code snippet.",
            },
            "shouldProposeFix": SHOULD_PROPOSE_FIX,
            "fix": fix_schema("ai-fix/ci-failure-summary"),
        },
        "required": ["analysis", "suggestedFix", "shouldProposeFix"],
    }


def triage_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "needsInfo": {
                "type": "boolean",
                "description": "True if the issue lacks sufficient information.",
            },
            "missingInfoReason": {
                "type": "string",
                "description": "Internal reason why info is missing.",
            },
            "question": {
                "type": "string",
                "description": (
                    "Polite question to ask the user for more details, "
                    "addressing them directly."
                ),
            },
        },
        "required": ["needsInfo", "missingInfoReason", "question"],
    }


def schema_for(task: AnalysisTask, item_number: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Return the response schema for a task, or None for free-text tasks."""
    if task == AnalysisTask.ISSUE_ANALYSIS:
        return issue_analysis_schema(item_number or 0)
    if task == AnalysisTask.PR_REVIEW:
        return pr_review_schema(item_number or 0)
    if task == AnalysisTask.CI_FAILURE:
        return ci_failure_schema()
    if task == AnalysisTask.TRIAGE:
        return triage_schema()
    if task == AnalysisTask.DOCUMENTATION:
        return None
    raise ValueError(f"Unknown analysis task: {task}")
