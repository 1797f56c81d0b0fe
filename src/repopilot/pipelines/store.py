"""Persistence of analysis results.

Results are keyed by ``(owner, name, number)`` for issues, pull requests
and workflow runs, and by ``(owner, name)`` for documentation. Saving the
same key again overwrites the previous result (last write wins).
"""

from typing import Dict, Optional, Protocol, Tuple

from src.repopilot.ai.models import CIAnalysis, DocumentationResult, IssueAnalysis, PRReview
from src.repopilot.github.models import RepositoryRef


ItemKey = Tuple[str, str, int]
RepoKey = Tuple[str, str]


class ResultStore(Protocol):
    """Storage for analysis results produced by the pipelines."""

    async def save_issue_analysis(
        self, repo: RepositoryRef, issue_number: int, result: IssueAnalysis
    ) -> None: ...

    async def get_issue_analysis(
        self, repo: RepositoryRef, issue_number: int
    ) -> Optional[IssueAnalysis]: ...

    async def save_pr_review(
        self, repo: RepositoryRef, pr_number: int, result: PRReview
    ) -> None: ...

    async def get_pr_review(
        self, repo: RepositoryRef, pr_number: int
    ) -> Optional[PRReview]: ...

    async def save_ci_analysis(
        self, repo: RepositoryRef, run_id: int, result: CIAnalysis
    ) -> None: ...

    async def get_ci_analysis(
        self, repo: RepositoryRef, run_id: int
    ) -> Optional[CIAnalysis]: ...

    async def save_documentation(
        self, repo: RepositoryRef, result: DocumentationResult
    ) -> None: ...

    async def get_documentation(
        self, repo: RepositoryRef
    ) -> Optional[DocumentationResult]: ...


def _item_key(repo: RepositoryRef, number: int) -> ItemKey:
    return (repo.owner, repo.name, number)


def _repo_key(repo: RepositoryRef) -> RepoKey:
    return (repo.owner, repo.name)


class InMemoryResultStore:
    """Process-local ResultStore, used by default and in tests."""

    def __init__(self):
        self._issue_analyses: Dict[ItemKey, IssueAnalysis] = {}
        self._pr_reviews: Dict[ItemKey, PRReview] = {}
        self._ci_analyses: Dict[ItemKey, CIAnalysis] = {}
        self._documentation: Dict[RepoKey, DocumentationResult] = {}

    async def save_issue_analysis(
        self, repo: RepositoryRef, issue_number: int, result: IssueAnalysis
    ) -> None:
        self._issue_analyses[_item_key(repo, issue_number)] = result

    async def get_issue_analysis(
        self, repo: RepositoryRef, issue_number: int
    ) -> Optional[IssueAnalysis]:
        return self._issue_analyses.get(_item_key(repo, issue_number))

    async def save_pr_review(
        self, repo: RepositoryRef, pr_number: int, result: PRReview
    ) -> None:
        self._pr_reviews[_item_key(repo, pr_number)] = result

    async def get_pr_review(
        self, repo: RepositoryRef, pr_number: int
    ) -> Optional[PRReview]:
        return self._pr_reviews.get(_item_key(repo, pr_number))

    async def save_ci_analysis(
        self, repo: RepositoryRef, run_id: int, result: CIAnalysis
    ) -> None:
        self._ci_analyses[_item_key(repo, run_id)] = result

    async def get_ci_analysis(
        self, repo: RepositoryRef, run_id: int
    ) -> Optional[CIAnalysis]:
        return self._ci_analyses.get(_item_key(repo, run_id))

    async def save_documentation(
        self, repo: RepositoryRef, result: DocumentationResult
    ) -> None:
        self._documentation[_repo_key(repo)] = result

    async def get_documentation(
        self, repo: RepositoryRef
    ) -> Optional[DocumentationResult]:
        return self._documentation.get(_repo_key(repo))
