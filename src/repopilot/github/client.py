"""GitHub API client for repository context and Git Data operations.

This module provides an async wrapper around the GitHub REST API for:
- Reading repository, issue, pull request and workflow state
- Reading file contents, diffs, job logs and recursive trees
- Managing labels and comments on issues
- Creating branches, blobs, trees, commits and pull requests

The client is deliberately one-shot: there is no local rate limiting and
no retry. Any non-success status is surfaced immediately as a
RemoteHostError carrying the status and response body verbatim, except
where a specific status is a valid outcome (404 on file lookup, 404 on
label removal).

A client instance is bound to a single token and must be constructed per
request; it is never shared across users.

Source:
- src/repopilot/github/models.py (parsed domain objects)
"""

import base64
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from src.repopilot.github.models import (
    CreatedPullRequest,
    FileContent,
    GitObject,
    Issue,
    IssueComment,
    PullRequest,
    RepositoryRef,
    TreeEntry,
    TreeItem,
    WorkflowJob,
    WorkflowRun,
)


logger = logging.getLogger(__name__)


DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"
RAW_MEDIA_TYPE = "application/vnd.github.raw"
DIFF_UNAVAILABLE = "Failed to load diff content."


class RemoteHostError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, None for
            transport failures.
        response_body: Response body from GitHub API, verbatim.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class BranchAlreadyExistsError(RemoteHostError):
    """Raised when creating a branch whose ref already exists."""


class GitHubClient:
    """Async GitHub API client bound to one token.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     issues = await client.list_issues("owner", "repo")
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "RepoPilot/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Make a single HTTP request.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH).
            path: API path (e.g., /repos/owner/repo/issues/1/comments).
            json_data: Optional JSON body for the request.
            params: Optional query parameters.
            headers: Optional per-request header overrides.

        Returns:
            The successful HTTP response from GitHub.

        Raises:
            RemoteHostError: On any non-2xx status or transport failure.
        """
        try:
            response = await self.client.request(
                method=method,
                url=path,
                json=json_data,
                params=params,
                headers=headers,
            )
        except httpx.RequestError as e:
            logger.error(
                "GitHub API request failed",
                extra={"path": path, "method": method, "error": str(e)},
            )
            raise RemoteHostError(
                message=f"GitHub API request failed: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e

        if response.status_code >= 400:
            error_body = response.text
            logger.error(
                "GitHub API error",
                extra={
                    "status_code": response.status_code,
                    "path": path,
                    "method": method,
                    "response_body": error_body[:500],
                },
            )
            raise RemoteHostError(
                message=f"GitHub API error {response.status_code}: {error_body}",
                status_code=response.status_code,
                response_body=error_body,
                request_url=str(response.url),
            )

        return response

    # -------------------------------------------------------------------------
    # Repository, issues and comments
    # -------------------------------------------------------------------------

    async def get_repository(self, owner: str, repo: str) -> RepositoryRef:
        """Get repository metadata, including its default branch."""
        response = await self._request("GET", f"/repos/{owner}/{repo}")
        return RepositoryRef.from_github_response(response.json())

    async def list_issues(
        self,
        owner: str,
        repo: str,
        per_page: int = 20,
    ) -> List[Issue]:
        """List open issues, excluding pull requests.

        The issues endpoint also returns pull requests; those carry a
        ``pull_request`` back-reference field and are dropped here.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            per_page: Page size requested from GitHub.

        Returns:
            Open issues, in the order GitHub returned them.
        """
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/issues",
            params={"state": "open", "per_page": per_page},
        )
        items = response.json()
        issues = filter_pull_requests(items)

        logger.debug(
            "Listed issues",
            extra={
                "owner": owner,
                "repo": repo,
                "returned": len(items),
                "issues": len(issues),
            },
        )

        return [Issue.from_github_response(item) for item in issues]

    async def get_issue(self, owner: str, repo: str, issue_number: int) -> Issue:
        """Get a single issue."""
        response = await self._request(
            "GET", f"/repos/{owner}/{repo}/issues/{issue_number}"
        )
        return Issue.from_github_response(response.json())

    async def list_issue_comments(
        self,
        owner: str,
        repo: str,
        issue_number: int,
    ) -> List[IssueComment]:
        """List comments on an issue, oldest first."""
        response = await self._request(
            "GET", f"/repos/{owner}/{repo}/issues/{issue_number}/comments"
        )
        return [IssueComment.from_github_response(c) for c in response.json()]

    async def create_comment(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        body: str,
    ) -> Dict[str, Any]:
        """Create a comment on an issue.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            issue_number: Issue number to comment on.
            body: Comment body in markdown format.

        Returns:
            The created comment data from GitHub API.
        """
        logger.info(
            "Creating comment on issue",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "body_length": len(body),
            },
        )

        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json_data={"body": body},
        )
        return response.json()

    async def add_label(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        label: str,
    ) -> List[Dict[str, Any]]:
        """Add a label to an issue.

        Returns:
            List of all labels on the issue after adding.
        """
        logger.info(
            "Adding label to issue",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "label": label,
            },
        )

        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/labels",
            json_data={"labels": [label]},
        )
        return response.json()

    async def remove_label(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        label: str,
    ) -> None:
        """Remove a label from an issue.

        A 404 means the label was not on the issue, which already
        satisfies the request.

        Raises:
            RemoteHostError: If the request fails with any other status.
        """
        path = (
            f"/repos/{owner}/{repo}/issues/{issue_number}/labels/"
            f"{quote(label, safe='')}"
        )

        logger.info(
            "Removing label from issue",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "label": label,
            },
        )

        try:
            await self._request("DELETE", path)
        except RemoteHostError as e:
            if e.status_code == 404:
                logger.debug(
                    "Label not found on issue (already removed)",
                    extra={
                        "owner": owner,
                        "repo": repo,
                        "issue_number": issue_number,
                        "label": label,
                    },
                )
                return
            raise

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------

    async def list_pull_requests(
        self,
        owner: str,
        repo: str,
        per_page: int = 20,
    ) -> List[PullRequest]:
        """List open pull requests."""
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls",
            params={"state": "open", "per_page": per_page},
        )
        return [PullRequest.from_github_response(pr) for pr in response.json()]

    async def get_pull_request(
        self,
        owner: str,
        repo: str,
        pr_number: int,
    ) -> PullRequest:
        """Get a single pull request."""
        response = await self._request(
            "GET", f"/repos/{owner}/{repo}/pulls/{pr_number}"
        )
        return PullRequest.from_github_response(response.json())

    async def get_pull_request_diff(
        self,
        owner: str,
        repo: str,
        pr_number: int,
    ) -> str:
        """Get the unified diff of a pull request.

        The diff is supplementary context, so any failure degrades to a
        placeholder string instead of raising.
        """
        try:
            response = await self._request(
                "GET",
                f"/repos/{owner}/{repo}/pulls/{pr_number}",
                headers={"Accept": DIFF_MEDIA_TYPE},
            )
        except RemoteHostError as e:
            logger.warning(
                "Could not load pull request diff",
                extra={
                    "owner": owner,
                    "repo": repo,
                    "pr_number": pr_number,
                    "status_code": e.status_code,
                },
            )
            return DIFF_UNAVAILABLE
        return response.text

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> CreatedPullRequest:
        """Open a pull request from ``head`` into ``base``."""
        logger.info(
            "Creating pull request",
            extra={
                "owner": owner,
                "repo": repo,
                "title": title,
                "head": head,
                "base": base,
            },
        )

        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json_data={"title": title, "body": body, "head": head, "base": base},
        )
        result = CreatedPullRequest.from_github_response(response.json())

        logger.info(
            "Pull request created successfully",
            extra={
                "owner": owner,
                "repo": repo,
                "pr_number": result.number,
                "pr_url": result.html_url,
            },
        )

        return result

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        per_page: int = 10,
    ) -> List[WorkflowRun]:
        """List the most recent workflow runs."""
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/actions/runs",
            params={"per_page": per_page},
        )
        runs = response.json().get("workflow_runs", [])
        return [WorkflowRun.from_github_response(run) for run in runs]

    async def list_workflow_jobs(
        self,
        owner: str,
        repo: str,
        run_id: int,
    ) -> List[WorkflowJob]:
        """List the jobs of a workflow run."""
        response = await self._request(
            "GET", f"/repos/{owner}/{repo}/actions/runs/{run_id}/jobs"
        )
        jobs = response.json().get("jobs", [])
        return [WorkflowJob.from_github_response(job) for job in jobs]

    async def get_job_logs(self, owner: str, repo: str, job_id: int) -> str:
        """Download the plain-text logs of a job.

        GitHub answers with a redirect to short-lived storage, which the
        HTTP client follows.
        """
        response = await self._request(
            "GET", f"/repos/{owner}/{repo}/actions/jobs/{job_id}/logs"
        )
        return response.text

    # -------------------------------------------------------------------------
    # Contents
    # -------------------------------------------------------------------------

    async def get_readme(self, owner: str, repo: str) -> str:
        """Get the repository README as raw text."""
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/readme",
            headers={"Accept": RAW_MEDIA_TYPE},
        )
        return response.text

    async def get_file_content(
        self,
        owner: str,
        repo: str,
        path: str,
        ref: str,
    ) -> FileContent:
        """Get the decoded text of a file at a ref.

        Args:
            owner: Repository owner.
            repo: Repository name.
            path: File path within the repository.
            ref: Branch, tag or commit sha to read from.

        Returns:
            FileContent with decoded text and blob sha. An absent file
            (404) yields empty content and an empty sha.
        """
        try:
            response = await self._request(
                "GET",
                f"/repos/{owner}/{repo}/contents/{quote(path)}",
                params={"ref": ref},
            )
        except RemoteHostError as e:
            if e.status_code == 404:
                return FileContent()
            raise

        data = response.json()
        encoded = data.get("content") or ""
        content = base64.b64decode(encoded).decode("utf-8", errors="replace")
        return FileContent(content=content, sha=data.get("sha", ""))

    async def get_repo_structure(
        self,
        owner: str,
        repo: str,
        ref: str,
    ) -> List[TreeEntry]:
        """Get the recursive tree at a ref as a flat list of entries."""
        response = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/git/trees/{quote(ref, safe='')}",
            params={"recursive": "1"},
        )
        data = response.json()

        if data.get("truncated"):
            logger.warning(
                "Repository tree listing was truncated by GitHub",
                extra={"owner": owner, "repo": repo, "ref": ref},
            )

        return [
            TreeEntry(path=item["path"], type=item["type"], sha=item["sha"])
            for item in data.get("tree", [])
        ]

    # -------------------------------------------------------------------------
    # Git Data API
    # -------------------------------------------------------------------------

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        """Get the commit sha at the tip of a branch."""
        response = await self._request(
            "GET", f"/repos/{owner}/{repo}/branches/{quote(branch, safe='')}"
        )
        return response.json()["commit"]["sha"]

    async def create_branch(
        self,
        owner: str,
        repo: str,
        branch: str,
        sha: str,
    ) -> Dict[str, Any]:
        """Create ``refs/heads/{branch}`` pointing at ``sha``.

        Raises:
            BranchAlreadyExistsError: If the ref already exists.
            RemoteHostError: For any other failure.
        """
        logger.info(
            "Creating branch",
            extra={"owner": owner, "repo": repo, "branch": branch, "sha": sha},
        )

        try:
            response = await self._request(
                "POST",
                f"/repos/{owner}/{repo}/git/refs",
                json_data={"ref": f"refs/heads/{branch}", "sha": sha},
            )
        except RemoteHostError as e:
            if e.status_code == 422 and "Reference already exists" in (
                e.response_body or ""
            ):
                raise BranchAlreadyExistsError(
                    message=e.message,
                    status_code=e.status_code,
                    response_body=e.response_body,
                    request_url=e.request_url,
                ) from e
            raise

        return response.json()

    async def create_blob(self, owner: str, repo: str, content: str) -> GitObject:
        """Create a blob holding the full text of a file."""
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json_data={"content": content, "encoding": "utf-8"},
        )
        return GitObject.from_github_response(response.json())

    async def create_tree(
        self,
        owner: str,
        repo: str,
        base_tree: str,
        items: List[TreeItem],
    ) -> GitObject:
        """Create a tree on top of ``base_tree`` with the given entries."""
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/trees",
            json_data={
                "base_tree": base_tree,
                "tree": [item.to_github_payload() for item in items],
            },
        )
        return GitObject.from_github_response(response.json())

    async def create_commit(
        self,
        owner: str,
        repo: str,
        message: str,
        tree_sha: str,
        parent_sha: str,
    ) -> GitObject:
        """Create a commit with a single parent."""
        response = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json_data={"message": message, "tree": tree_sha, "parents": [parent_sha]},
        )
        return GitObject.from_github_response(response.json())

    async def update_ref(
        self,
        owner: str,
        repo: str,
        ref: str,
        sha: str,
        force: bool = False,
    ) -> Dict[str, Any]:
        """Point ``ref`` (e.g. ``heads/my-branch``) at ``sha``."""
        response = await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/{ref}",
            json_data={"sha": sha, "force": force},
        )
        return response.json()


def filter_pull_requests(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop entries of an issues listing that are really pull requests."""
    return [item for item in items if "pull_request" not in item]
