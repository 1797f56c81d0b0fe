"""GitHub API access for RepoPilot.

This module provides:
- GitHubClient: one-shot async wrapper around the REST API
- Parsed domain models for repositories, issues, PRs and workflow runs
- FixPublisher: publishes a Fix Proposal as a pull request

There is no rate limiting or retry; errors surface immediately.
"""

from src.repopilot.github.client import (
    BranchAlreadyExistsError,
    GitHubClient,
    RemoteHostError,
)
from src.repopilot.github.models import (
    FileContent,
    Issue,
    IssueComment,
    PullRequest,
    RepositoryRef,
    TreeEntry,
    WorkflowJob,
    WorkflowRun,
)
from src.repopilot.github.fix_publisher import (
    FixApplicationError,
    FixApplicationResult,
    FixPublisher,
)

__all__ = [
    "BranchAlreadyExistsError",
    "FileContent",
    "FixApplicationError",
    "FixApplicationResult",
    "FixPublisher",
    "GitHubClient",
    "Issue",
    "IssueComment",
    "PullRequest",
    "RemoteHostError",
    "RepositoryRef",
    "TreeEntry",
    "WorkflowJob",
    "WorkflowRun",
]
