"""Publish a Fix Proposal as a new branch, commit and pull request.

The publish sequence is strictly ordered, each step consuming the result
of the previous one:

1. Resolve the default branch's tip (``baseSha``).
2. Create ``refs/heads/{branch_name}`` at ``baseSha``.
3. Create one blob per changed file (full content).
4. Create a tree on top of ``baseSha`` with the new blobs.
5. Create a commit with ``baseSha`` as its sole parent.
6. Force-update the branch ref to the new commit.
7. Open the pull request into the default branch.

The first failing step aborts the sequence and is reported as a single
FixApplicationError naming the step. Completed steps are not rolled
back: a failure after step 2 leaves the branch behind.

Source:
- src/repopilot/github/client.py (Git Data API, pulls)
- src/repopilot/ai/models.py (FixProposal)
"""

import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel

from src.repopilot.ai.models import FixProposal
from src.repopilot.events import EventEmitter, EventType, PipelineEvent, safe_emit
from src.repopilot.github.client import GitHubClient
from src.repopilot.github.models import RepositoryRef, TreeItem


logger = logging.getLogger(__name__)


class PublishStep:
    """Names of the publish steps, as reported in FixApplicationError.step."""

    VALIDATE = "validate"
    RESOLVE_BASE = "resolve_base"
    CREATE_BRANCH = "create_branch"
    CREATE_BLOBS = "create_blobs"
    CREATE_TREE = "create_tree"
    CREATE_COMMIT = "create_commit"
    UPDATE_REF = "update_ref"
    CREATE_PULL_REQUEST = "create_pull_request"


class FixApplicationError(Exception):
    """Raised when publishing a Fix Proposal fails.

    Attributes:
        message: The first failure's message.
        step: The publish step that failed.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, step: str, cause: Optional[Exception] = None):
        self.message = message
        self.step = step
        self.cause = cause
        super().__init__(message)


class FixApplicationResult(BaseModel):
    """Outcome of a successful publish."""

    success: bool = True
    pr_url: str
    pr_number: int
    branch_name: str
    commit_sha: str


class FixPublisher:
    """Runs the publish sequence for a Fix Proposal.

    Attributes:
        github_client: Client bound to the caller's token.
        emitter: Optional event sink for fix_published / error events.

    Example:
        >>> publisher = FixPublisher(client)
        >>> result = await publisher.apply_fix(repo, proposal)
        >>> result.pr_url
        'https://github.com/org/repo/pull/7'
    """

    def __init__(
        self,
        github_client: GitHubClient,
        emitter: Optional[EventEmitter] = None,
    ):
        self.github_client = github_client
        self.emitter = emitter

    async def apply_fix(
        self,
        repo: RepositoryRef,
        proposal: FixProposal,
    ) -> FixApplicationResult:
        """Publish ``proposal`` against ``repo``'s default branch.

        Raises:
            FixApplicationError: On the first failing step; ``step`` names it.
        """
        if not proposal.changes:
            raise FixApplicationError(
                "Fix proposal contains no file changes",
                step=PublishStep.VALIDATE,
            )

        logger.info(
            "Publishing fix proposal",
            extra={
                "repository": repo.full_name,
                "branch_name": proposal.branch_name,
                "file_count": len(proposal.changes),
                "files": proposal.file_paths,
            },
        )

        step = PublishStep.RESOLVE_BASE
        try:
            base_sha = await self.github_client.get_branch_sha(
                repo.owner, repo.name, repo.default_branch
            )

            step = PublishStep.CREATE_BRANCH
            await self.github_client.create_branch(
                repo.owner, repo.name, proposal.branch_name, base_sha
            )

            step = PublishStep.CREATE_BLOBS
            blobs = await asyncio.gather(
                *(
                    self.github_client.create_blob(repo.owner, repo.name, change.new_content)
                    for change in proposal.changes
                )
            )
            tree_items: List[TreeItem] = [
                TreeItem(path=change.file_path, sha=blob.sha)
                for change, blob in zip(proposal.changes, blobs)
            ]

            step = PublishStep.CREATE_TREE
            tree = await self.github_client.create_tree(
                repo.owner, repo.name, base_sha, tree_items
            )

            step = PublishStep.CREATE_COMMIT
            commit = await self.github_client.create_commit(
                repo.owner, repo.name, proposal.commit_message, tree.sha, base_sha
            )

            step = PublishStep.UPDATE_REF
            await self.github_client.update_ref(
                repo.owner,
                repo.name,
                f"heads/{proposal.branch_name}",
                commit.sha,
                force=True,
            )

            step = PublishStep.CREATE_PULL_REQUEST
            pr = await self.github_client.create_pull_request(
                repo.owner,
                repo.name,
                title=proposal.pr_title,
                body=proposal.pr_body,
                head=proposal.branch_name,
                base=repo.default_branch,
            )
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            logger.error(
                "Fix publication failed",
                extra={
                    "repository": repo.full_name,
                    "branch_name": proposal.branch_name,
                    "step": step,
                    "error": message,
                    "error_type": type(e).__name__,
                },
            )
            await safe_emit(
                self.emitter,
                PipelineEvent(
                    event_type=EventType.ERROR,
                    subject=f"{repo.full_name}@{proposal.branch_name}",
                    repository=repo.full_name,
                    details={
                        "operation": "apply_fix",
                        "step": step,
                        "error_message": message,
                        "error_type": type(e).__name__,
                    },
                ),
            )
            raise FixApplicationError(message, step=step, cause=e) from e

        result = FixApplicationResult(
            pr_url=pr.html_url,
            pr_number=pr.number,
            branch_name=proposal.branch_name,
            commit_sha=commit.sha,
        )

        logger.info(
            "Fix proposal published",
            extra={
                "repository": repo.full_name,
                "pr_number": result.pr_number,
                "pr_url": result.pr_url,
            },
        )
        await safe_emit(
            self.emitter,
            PipelineEvent(
                event_type=EventType.FIX_PUBLISHED,
                subject=f"{repo.full_name}#{result.pr_number}",
                repository=repo.full_name,
                details={
                    "pr_number": result.pr_number,
                    "pr_url": result.pr_url,
                    "branch_name": result.branch_name,
                    "commit_sha": result.commit_sha,
                },
            ),
        )

        return result
