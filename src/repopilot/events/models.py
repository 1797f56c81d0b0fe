"""Event models for RepoPilot observability.

This module defines the data models for pipeline events:
- EventType: Enum of all event types emitted by the pipelines
- PipelineEvent: Structured event with all required metadata

Events give visibility into completed analyses, published fixes,
scan outcomes and failures without coupling the pipelines to any
particular monitoring backend.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by RepoPilot.

    Attributes:
        ANALYSIS_COMPLETED: An analysis result was produced and stored.
        FIX_PUBLISHED: A Fix Proposal was published as a pull request.
        SCAN_COMPLETED: A triage pass or weekly scan finished.
        ERROR: An operation failed.
    """

    ANALYSIS_COMPLETED = "analysis_completed"
    FIX_PUBLISHED = "fix_published"
    SCAN_COMPLETED = "scan_completed"
    ERROR = "error"


class PipelineEvent(BaseModel):
    """Structured event emitted by a pipeline.

    Attributes:
        event_type: The category of event.
        subject: What the event is about, e.g. "org/repo#123",
            "org/repo/runs/42" or "org/repo".
        repository: Full repository path in format "{owner}/{repo}".
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For ANALYSIS_COMPLETED events:
            - task: The analysis task value
            - actionable: Whether a Fix Proposal was produced
            - duration_seconds: Time spent producing the result

        For FIX_PUBLISHED events:
            - pr_number, pr_url, branch_name, commit_sha

        For SCAN_COMPLETED events:
            - scan: "triage" or "weekly"
            - processed: Number of issues examined
            - statuses: Count of results per status

        For ERROR events:
            - operation: Which operation failed
            - error_message: Human-readable error description
            - error_type: Exception class name
            - step: Publish step, for fix publication failures
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    subject: str = Field(
        ...,
        min_length=1,
        description="Identifier of the issue, PR, run or repository involved",
    )

    repository: str = Field(
        ...,
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event into a dict suitable for ``extra=`` logging.

        Example:
            >>> event = PipelineEvent(
            ...     event_type=EventType.ERROR,
            ...     subject="org/repo#123",
            ...     repository="org/repo",
            ...     details={"error_message": "AI provider call failed"}
            ... )
            >>> event.to_log_dict()["event_type"]
            'error'
        """
        return {
            "event_type": self.event_type.value,
            "subject": self.subject,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
