"""Issue triage workflow and the weekly follow-up scan.

The triage pass asks the engine whether each untriaged open issue is
actionable as written:
- Not actionable: add the needs-more-info label and post the model's
  clarifying question, addressed to the issue author.
- Actionable: add the triage-complete label.

The weekly scan re-checks issues labelled needs-more-info. When the
most recent comment is by the issue's author, that is taken as their
answer: the label is removed and an acknowledgement is posted. Any
other last commenter leaves the issue waiting.

A failure on one issue is recorded in the report with status ``error``
and the remaining issues are still processed.

Source:
- src/repopilot/github/client.py (GitHubClient)
- src/repopilot/ai/engine.py (ProposalEngine.triage_issue)
- src/repopilot/pipelines/formatting.py (comment bodies)
"""

import logging
from collections import Counter
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.repopilot.ai.engine import AIProviderError, AIResponseParseError, ProposalEngine
from src.repopilot.events import EventEmitter, EventType, PipelineEvent, safe_emit
from src.repopilot.github.client import GitHubClient, RemoteHostError
from src.repopilot.github.models import Issue, IssueComment, RepositoryRef
from src.repopilot.pipelines.formatting import (
    NEEDS_INFO_LABEL,
    format_acknowledgement_comment,
    format_triage_comment,
)


logger = logging.getLogger(__name__)


TRIAGE_COMPLETE_LABEL = "triage-complete"

# Failures that are confined to a single issue
ITEM_ERRORS = (RemoteHostError, AIProviderError, AIResponseParseError)


class ScanStatus(str, Enum):
    NEEDS_INFO = "needs-info"
    TRIAGED = "triaged"
    UPDATED = "updated"
    NO_USER_RESPONSE = "no-user-response"
    ERROR = "error"


class ScanItemResult(BaseModel):
    """Outcome for one issue of a triage pass or weekly scan."""

    issue: int
    status: ScanStatus
    action: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class ScanReport(BaseModel):
    """Outcome of a whole triage pass or weekly scan."""

    processed: int = 0
    results: List[ScanItemResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[ScanItemResult]) -> "ScanReport":
        return cls(processed=len(results), results=results)

    def status_counts(self) -> dict:
        return dict(Counter(result.status.value for result in self.results))


def needs_triage(
    issue: Issue,
    needs_info_label: str = NEEDS_INFO_LABEL,
    triage_complete_label: str = TRIAGE_COMPLETE_LABEL,
) -> bool:
    """True for open issues carrying neither triage label."""
    return (
        issue.state == "open"
        and not issue.has_label(needs_info_label)
        and not issue.has_label(triage_complete_label)
    )


def author_responded(issue: Issue, comments: List[IssueComment]) -> bool:
    """True if the most recent comment was written by the issue's author."""
    return bool(comments) and comments[-1].author == issue.author


class TriageManager:
    """Runs triage passes and weekly scans against one repository.

    Attributes:
        github_client: Client bound to the caller's token.
        engine: Proposal engine used for the triage task.
        needs_info_label: Label marking issues waiting on their author.
        triage_complete_label: Label marking issues already triaged.

    Example:
        >>> manager = TriageManager(client, engine)
        >>> report = await manager.run_triage_pass("org", "repo", api_key="...")
        >>> report.processed
        3
    """

    def __init__(
        self,
        github_client: GitHubClient,
        engine: ProposalEngine,
        needs_info_label: str = NEEDS_INFO_LABEL,
        triage_complete_label: str = TRIAGE_COMPLETE_LABEL,
        emitter: Optional[EventEmitter] = None,
        page_size: int = 20,
    ):
        self.github_client = github_client
        self.engine = engine
        self.needs_info_label = needs_info_label
        self.triage_complete_label = triage_complete_label
        self.emitter = emitter
        self.page_size = page_size

    async def triage_issue(
        self,
        repo: RepositoryRef,
        issue: Issue,
        api_key: str,
        model: Optional[str] = None,
    ) -> ScanItemResult:
        """Triage a single issue and apply the resulting label/comment."""
        triage = await self.engine.triage_issue(issue, api_key, model=model, repo=repo)

        if triage.needs_info:
            logger.info(
                "Issue needs more information",
                extra={
                    "repository": repo.full_name,
                    "issue_number": issue.number,
                    "reason": triage.missing_info_reason,
                },
            )
            await self.github_client.add_label(
                repo.owner, repo.name, issue.number, self.needs_info_label
            )
            await self.github_client.create_comment(
                repo.owner, repo.name, issue.number, format_triage_comment(issue.author, triage)
            )
            return ScanItemResult(
                issue=issue.number,
                status=ScanStatus.NEEDS_INFO,
                reason=triage.missing_info_reason,
            )

        logger.info(
            "Issue has sufficient information",
            extra={"repository": repo.full_name, "issue_number": issue.number},
        )
        await self.github_client.add_label(
            repo.owner, repo.name, issue.number, self.triage_complete_label
        )
        return ScanItemResult(issue=issue.number, status=ScanStatus.TRIAGED)

    async def run_triage_pass(
        self,
        owner: str,
        repo_name: str,
        api_key: str,
        model: Optional[str] = None,
    ) -> ScanReport:
        """Triage every open issue that carries neither triage label."""
        repo = RepositoryRef(owner=owner, name=repo_name)
        issues = await self.github_client.list_issues(owner, repo_name, per_page=self.page_size)
        pending = [
            issue
            for issue in issues
            if needs_triage(issue, self.needs_info_label, self.triage_complete_label)
        ]

        logger.info(
            "Starting triage pass",
            extra={
                "repository": repo.full_name,
                "open_issues": len(issues),
                "untriaged_issues": len(pending),
            },
        )

        results: List[ScanItemResult] = []
        for issue in pending:
            try:
                results.append(await self.triage_issue(repo, issue, api_key, model))
            except ITEM_ERRORS as e:
                results.append(self._item_error(repo, issue, e))

        report = ScanReport.from_results(results)
        await self._scan_completed(repo, "triage", report)
        return report

    async def check_for_response(
        self,
        repo: RepositoryRef,
        issue: Issue,
    ) -> Optional[ScanItemResult]:
        """Check a waiting issue for an author reply.

        Returns:
            None when the issue has no comments at all, otherwise the
            outcome for the issue.
        """
        comments = await self.github_client.list_issue_comments(
            repo.owner, repo.name, issue.number
        )
        if not comments:
            return None

        if not author_responded(issue, comments):
            return ScanItemResult(issue=issue.number, status=ScanStatus.NO_USER_RESPONSE)

        logger.info(
            "Author responded, removing label",
            extra={"repository": repo.full_name, "issue_number": issue.number},
        )
        await self.github_client.remove_label(
            repo.owner, repo.name, issue.number, self.needs_info_label
        )
        await self.github_client.create_comment(
            repo.owner,
            repo.name,
            issue.number,
            format_acknowledgement_comment(self.needs_info_label),
        )
        return ScanItemResult(
            issue=issue.number,
            status=ScanStatus.UPDATED,
            action="removed-label",
        )

    async def run_weekly_scan(self, owner: str, repo_name: str) -> ScanReport:
        """Re-check issues waiting for information from their author.

        Issues without any comments are skipped and do not appear in the
        report.
        """
        repo = RepositoryRef(owner=owner, name=repo_name)
        issues = await self.github_client.list_issues(owner, repo_name, per_page=self.page_size)
        waiting = [issue for issue in issues if issue.has_label(self.needs_info_label)]

        logger.info(
            "Starting weekly scan",
            extra={"repository": repo.full_name, "waiting_issues": len(waiting)},
        )

        results: List[ScanItemResult] = []
        for issue in waiting:
            try:
                result = await self.check_for_response(repo, issue)
            except ITEM_ERRORS as e:
                result = self._item_error(repo, issue, e)
            if result is not None:
                results.append(result)

        report = ScanReport.from_results(results)
        await self._scan_completed(repo, "weekly", report)
        return report

    def _item_error(self, repo: RepositoryRef, issue: Issue, error: Exception) -> ScanItemResult:
        message = getattr(error, "message", None) or str(error)
        logger.error(
            "Failed to process issue",
            extra={
                "repository": repo.full_name,
                "issue_number": issue.number,
                "error": message,
                "error_type": type(error).__name__,
            },
        )
        return ScanItemResult(issue=issue.number, status=ScanStatus.ERROR, error=message)

    async def _scan_completed(self, repo: RepositoryRef, scan: str, report: ScanReport) -> None:
        logger.info(
            "Scan completed",
            extra={
                "repository": repo.full_name,
                "scan": scan,
                "processed": report.processed,
                "statuses": report.status_counts(),
            },
        )
        await safe_emit(
            self.emitter,
            PipelineEvent(
                event_type=EventType.SCAN_COMPLETED,
                subject=repo.full_name,
                repository=repo.full_name,
                details={
                    "scan": scan,
                    "processed": report.processed,
                    "statuses": report.status_counts(),
                },
            ),
        )
