"""Analysis pipelines: issue analysis, PR review, CI failure, documentation.

Each pipeline is a thin composition of the GitHub client and the
ProposalEngine plus result persistence:

1. Check the session holds the secrets the pipeline needs (no I/O yet).
2. Gather repository context through a GitHubClient bound to the
   session's token.
3. Run the engine for the task.
4. Persist the result and emit an ``analysis_completed`` event.

A fresh GitHubClient is built for every call and closed afterwards. The
same class also serves the repository listings and the stored-result
reads behind the HTTP GET routes.

Source:
- src/repopilot/github/client.py (GitHubClient)
- src/repopilot/ai/engine.py (ProposalEngine)
- src/repopilot/pipelines/store.py (ResultStore)
"""

import asyncio
import logging
import re
import time
from typing import Callable, List, Optional

from pydantic import BaseModel

from src.repopilot.ai.context import NO_README_PLACEHOLDER, FileContext, render_structure
from src.repopilot.ai.engine import ProposalEngine
from src.repopilot.ai.models import (
    CIAnalysis,
    DocumentationResult,
    FixProposal,
    IssueAnalysis,
    PRReview,
)
from src.repopilot.config import RepoPilotSettings
from src.repopilot.events import EventEmitter, EventType, PipelineEvent, safe_emit
from src.repopilot.github.client import GitHubClient, RemoteHostError
from src.repopilot.github.fix_publisher import (
    FixApplicationError,
    FixApplicationResult,
    FixPublisher,
    PublishStep,
)
from src.repopilot.github.models import Issue, PullRequest, RepositoryRef, WorkflowRun
from src.repopilot.pipelines.store import ResultStore
from src.repopilot.session import Session


logger = logging.getLogger(__name__)


DIFF_FILE_HEADER = re.compile(r"^diff --git a/(.*?) b/(.*?)$", re.MULTILINE)

NO_FAILED_JOB = "No failed job found for this run."


GitHubClientFactory = Callable[[str], GitHubClient]


def changed_file_paths(diff: str) -> List[str]:
    """Extract the pre-image path of every file header in a unified diff."""
    return [match.group(1) for match in DIFF_FILE_HEADER.finditer(diff) if match.group(1)]


def file_fetch_error(error: Exception) -> str:
    message = getattr(error, "message", None) or str(error)
    return f"Error: Could not fetch content. {message}"


class PullRequestReviewOutcome(BaseModel):
    """A PR review together with the context it was produced from."""

    review: PRReview
    diff: str
    files: List[FileContext]


class AnalysisPipelines:
    """Entry points for the per-user analysis operations.

    Attributes:
        settings: Service settings.
        engine: The proposal engine.
        store: Where results are persisted.
        emitter: Optional event sink.
    """

    def __init__(
        self,
        settings: RepoPilotSettings,
        engine: ProposalEngine,
        store: ResultStore,
        emitter: Optional[EventEmitter] = None,
        client_factory: Optional[GitHubClientFactory] = None,
    ):
        self.settings = settings
        self.engine = engine
        self.store = store
        self.emitter = emitter
        self.client_factory = client_factory or self._default_client

    def _default_client(self, token: str) -> GitHubClient:
        return GitHubClient(
            token=token,
            base_url=self.settings.github_base_url,
            timeout=self.settings.github_timeout_seconds,
        )

    async def _completed(
        self,
        repo: RepositoryRef,
        subject: str,
        task: str,
        started: float,
        actionable: bool = False,
    ) -> None:
        await safe_emit(
            self.emitter,
            PipelineEvent(
                event_type=EventType.ANALYSIS_COMPLETED,
                subject=subject,
                repository=repo.full_name,
                details={
                    "task": task,
                    "actionable": actionable,
                    "duration_seconds": round(time.monotonic() - started, 3),
                },
            ),
        )

    async def _failed(self, full_name: str, subject: str, operation: str, error: Exception) -> None:
        await safe_emit(
            self.emitter,
            PipelineEvent(
                event_type=EventType.ERROR,
                subject=subject,
                repository=full_name,
                details={
                    "operation": operation,
                    "error_message": getattr(error, "message", None) or str(error),
                    "error_type": type(error).__name__,
                },
            ),
        )

    # -------------------------------------------------------------------------
    # Issue analysis
    # -------------------------------------------------------------------------

    async def analyze_issue(
        self,
        session: Session,
        owner: str,
        repo_name: str,
        issue_number: int,
        feedback: Optional[str] = None,
    ) -> IssueAnalysis:
        """Analyse an issue against the default branch tree and persist the result.

        ``feedback`` is the user's comment on a previous proposal, if any.
        """
        token = session.require_github_token()
        api_key = session.require_ai_api_key()
        subject = f"{owner}/{repo_name}#{issue_number}"
        started = time.monotonic()

        client = self.client_factory(token)
        try:
            repo = await client.get_repository(owner, repo_name)
            issue = await client.get_issue(owner, repo_name, issue_number)
            entries = await client.get_repo_structure(owner, repo_name, repo.default_branch)

            result = await self.engine.analyze_issue(
                issue,
                repo,
                render_structure(entries),
                api_key,
                feedback=feedback,
                model=session.ai_model_id,
            )
            await self.store.save_issue_analysis(repo, issue_number, result)
        except Exception as e:
            await self._failed(f"{owner}/{repo_name}", subject, "analyze_issue", e)
            raise
        finally:
            await client.close()

        logger.info(
            "Issue analysis stored",
            extra={
                "repository": repo.full_name,
                "issue_number": issue_number,
                "complexity": result.complexity.value,
                "actionable": result.is_actionable,
            },
        )
        await self._completed(repo, subject, result.task.value, started, result.is_actionable)
        return result

    # -------------------------------------------------------------------------
    # Pull request review
    # -------------------------------------------------------------------------

    async def review_pull_request(
        self,
        session: Session,
        owner: str,
        repo_name: str,
        pr_number: int,
    ) -> PullRequestReviewOutcome:
        """Review a pull request from its diff and the full content of changed files.

        A file that cannot be fetched is reported inline in the file
        context rather than failing the review.
        """
        token = session.require_github_token()
        api_key = session.require_ai_api_key()
        subject = f"{owner}/{repo_name}#{pr_number}"
        started = time.monotonic()

        client = self.client_factory(token)
        try:
            pr = await client.get_pull_request(owner, repo_name, pr_number)
            diff = await client.get_pull_request_diff(owner, repo_name, pr_number)
            paths = changed_file_paths(diff)

            async def fetch(path: str) -> FileContext:
                try:
                    file_content = await client.get_file_content(
                        owner, repo_name, path, pr.head_ref
                    )
                except RemoteHostError as e:
                    logger.warning(
                        "Could not fetch changed file",
                        extra={"repository": subject, "path": path, "error": e.message},
                    )
                    return FileContext(file_path=path, content=file_fetch_error(e))
                return FileContext(file_path=path, content=file_content.content)

            files = list(await asyncio.gather(*(fetch(path) for path in paths)))
            repo = await client.get_repository(owner, repo_name)

            review = await self.engine.review_pull_request(
                pr,
                repo,
                api_key,
                model=session.ai_model_id,
                diff=diff,
                files=files,
            )
            await self.store.save_pr_review(repo, pr_number, review)
        except Exception as e:
            await self._failed(f"{owner}/{repo_name}", subject, "review_pull_request", e)
            raise
        finally:
            await client.close()

        logger.info(
            "Pull request review stored",
            extra={
                "repository": repo.full_name,
                "pr_number": pr_number,
                "status": review.status.value,
                "score": review.score,
                "changed_files": len(files),
            },
        )
        await self._completed(repo, subject, review.task.value, started, review.is_actionable)
        return PullRequestReviewOutcome(review=review, diff=diff, files=files)

    # -------------------------------------------------------------------------
    # CI failure analysis
    # -------------------------------------------------------------------------

    async def analyze_workflow_run(
        self,
        session: Session,
        owner: str,
        repo_name: str,
        run_id: int,
    ) -> CIAnalysis:
        """Diagnose the first failed job of a workflow run.

        Runs without a failed job short-circuit with a "no failed job"
        result; the model is not called and nothing is persisted.
        Persistence failures are logged and do not fail the call.
        """
        token = session.require_github_token()
        api_key = session.require_ai_api_key()
        subject = f"{owner}/{repo_name}/runs/{run_id}"
        started = time.monotonic()

        client = self.client_factory(token)
        try:
            jobs = await client.list_workflow_jobs(owner, repo_name, run_id)
            failed_job = next((job for job in jobs if job.failed), None)

            if failed_job is None:
                logger.info(
                    "No failed job in workflow run",
                    extra={"repository": f"{owner}/{repo_name}", "run_id": run_id},
                )
                return CIAnalysis(analysis=NO_FAILED_JOB, suggested_fix="")

            logs = await client.get_job_logs(owner, repo_name, failed_job.id)
            repo = await client.get_repository(owner, repo_name)
            entries = await client.get_repo_structure(owner, repo_name, repo.default_branch)

            result = await self.engine.analyze_workflow_failure(
                logs,
                repo,
                render_structure(entries),
                api_key,
                model=session.ai_model_id,
            )
        except Exception as e:
            await self._failed(f"{owner}/{repo_name}", subject, "analyze_workflow_run", e)
            raise
        finally:
            await client.close()

        try:
            await self.store.save_ci_analysis(repo, run_id, result)
        except Exception as e:
            logger.error(
                "Failed to save CI analysis",
                extra={"repository": repo.full_name, "run_id": run_id, "error": str(e)},
            )

        await self._completed(repo, subject, result.task.value, started, result.is_actionable)
        return result

    # -------------------------------------------------------------------------
    # Documentation
    # -------------------------------------------------------------------------

    async def generate_documentation(
        self,
        session: Session,
        owner: str,
        repo_name: str,
    ) -> DocumentationResult:
        """Generate markdown documentation with the README as context."""
        token = session.require_github_token()
        api_key = session.require_ai_api_key()
        subject = f"{owner}/{repo_name}"
        started = time.monotonic()

        client = self.client_factory(token)
        try:
            repo = await client.get_repository(owner, repo_name)
            try:
                readme = await client.get_readme(owner, repo_name)
            except RemoteHostError as e:
                logger.info(
                    "README unavailable, generating without it",
                    extra={"repository": subject, "status_code": e.status_code},
                )
                readme = NO_README_PLACEHOLDER

            result = await self.engine.generate_documentation(
                repo, readme, api_key, model=session.ai_model_id
            )
            await self.store.save_documentation(repo, result)
        except Exception as e:
            await self._failed(subject, subject, "generate_documentation", e)
            raise
        finally:
            await client.close()

        await self._completed(repo, subject, result.task.value, started)
        return result

    # -------------------------------------------------------------------------
    # Repository listings
    # -------------------------------------------------------------------------

    async def list_open_issues(self, session: Session, owner: str, repo_name: str) -> List[Issue]:
        """List open issues (pull requests excluded) for the caller to pick from."""
        client = self.client_factory(session.require_github_token())
        try:
            return await client.list_issues(
                owner, repo_name, per_page=self.settings.issues_page_size
            )
        finally:
            await client.close()

    async def list_open_pull_requests(
        self, session: Session, owner: str, repo_name: str
    ) -> List[PullRequest]:
        client = self.client_factory(session.require_github_token())
        try:
            return await client.list_pull_requests(
                owner, repo_name, per_page=self.settings.issues_page_size
            )
        finally:
            await client.close()

    async def list_workflow_runs(
        self, session: Session, owner: str, repo_name: str
    ) -> List[WorkflowRun]:
        """List the most recent workflow runs, newest first."""
        client = self.client_factory(session.require_github_token())
        try:
            return await client.list_workflow_runs(
                owner, repo_name, per_page=self.settings.workflow_runs_page_size
            )
        finally:
            await client.close()

    # -------------------------------------------------------------------------
    # Stored results
    # -------------------------------------------------------------------------

    async def stored_issue_analysis(
        self, owner: str, repo_name: str, issue_number: int
    ) -> Optional[IssueAnalysis]:
        return await self.store.get_issue_analysis(
            RepositoryRef(owner=owner, name=repo_name), issue_number
        )

    async def stored_pr_review(
        self, owner: str, repo_name: str, pr_number: int
    ) -> Optional[PRReview]:
        return await self.store.get_pr_review(
            RepositoryRef(owner=owner, name=repo_name), pr_number
        )

    async def stored_ci_analysis(
        self, owner: str, repo_name: str, run_id: int
    ) -> Optional[CIAnalysis]:
        return await self.store.get_ci_analysis(
            RepositoryRef(owner=owner, name=repo_name), run_id
        )

    async def stored_documentation(
        self, owner: str, repo_name: str
    ) -> Optional[DocumentationResult]:
        return await self.store.get_documentation(RepositoryRef(owner=owner, name=repo_name))

    # -------------------------------------------------------------------------
    # Fix publication
    # -------------------------------------------------------------------------

    async def apply_fix(
        self,
        session: Session,
        owner: str,
        repo_name: str,
        proposal: FixProposal,
    ) -> FixApplicationResult:
        """Publish a Fix Proposal as a pull request into the default branch.

        Raises:
            FixApplicationError: If any step fails, including resolving
                the repository's default branch (step ``resolve_base``).
        """
        token = session.require_github_token()
        full_name = f"{owner}/{repo_name}"

        client = self.client_factory(token)
        try:
            try:
                repo = await client.get_repository(owner, repo_name)
            except RemoteHostError as e:
                logger.error(
                    "Failed to resolve repository for fix publication",
                    extra={"repository": full_name, "error": e.message},
                )
                await self._failed(full_name, proposal.branch_name, "apply_fix", e)
                raise FixApplicationError(
                    e.message, step=PublishStep.RESOLVE_BASE, cause=e
                ) from e

            publisher = FixPublisher(client, emitter=self.emitter)
            return await publisher.apply_fix(repo, proposal)
        finally:
            await client.close()
