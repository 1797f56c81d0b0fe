"""Unit tests for the GitHub client.

Requests are served by an httpx.MockTransport so the tests exercise the
real request building, status handling and response parsing.
"""

import asyncio
import base64
import json
from typing import Callable, List

import httpx
import pytest

from src.repopilot.github.client import (
    DIFF_MEDIA_TYPE,
    DIFF_UNAVAILABLE,
    BranchAlreadyExistsError,
    GitHubClient,
    RemoteHostError,
    filter_pull_requests,
)
from src.repopilot.github.models import TreeItem


def run_async(coro):
    return asyncio.run(coro)


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> GitHubClient:
    return GitHubClient(
        token="ghp_test",
        base_url="https://api.github.test",
        transport=httpx.MockTransport(handler),
    )


def call(handler, method_name: str, *args, **kwargs):
    """Invoke a client method against ``handler`` and close the client."""

    async def _run():
        async with make_client(handler) as client:
            return await getattr(client, method_name)(*args, **kwargs)

    return run_async(_run())


class Recorder:
    """Transport handler returning a canned response and recording requests."""

    def __init__(self, status_code: int = 200, json_body=None, text: str = None):
        self.status_code = status_code
        self.json_body = json_body
        self.text = text
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.json_body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def _issue(number: int, **extra) -> dict:
    data = {
        "number": number,
        "title": f"Issue {number}",
        "body": "Body",
        "state": "open",
        "user": {"login": "octocat"},
        "labels": [{"name": "bug"}],
    }
    data.update(extra)
    return data


class TestHeaders:
    def test_default_headers_carry_token_and_api_version(self):
        recorder = Recorder(json_body={"owner": {"login": "org"}, "name": "repo"})
        call(recorder, "get_repository", "org", "repo")

        headers = recorder.last.headers
        assert headers["Authorization"] == "Bearer ghp_test"
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"


class TestErrors:
    def test_non_success_status_raises_with_details(self):
        recorder = Recorder(status_code=500, text="boom")

        with pytest.raises(RemoteHostError) as exc_info:
            call(recorder, "get_issue", "org", "repo", 1)

        assert exc_info.value.status_code == 500
        assert exc_info.value.response_body == "boom"
        assert "/repos/org/repo/issues/1" in exc_info.value.request_url

    def test_no_retry_on_server_error(self):
        recorder = Recorder(status_code=503, text="unavailable")

        with pytest.raises(RemoteHostError):
            call(recorder, "get_issue", "org", "repo", 1)

        assert len(recorder.requests) == 1

    def test_transport_failure_raises_without_status(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RemoteHostError) as exc_info:
            call(handler, "get_issue", "org", "repo", 1)

        assert exc_info.value.status_code is None


class TestListIssues:
    def test_pull_requests_are_filtered_out(self):
        recorder = Recorder(
            json_body=[
                _issue(1),
                _issue(2, pull_request={"url": "https://api.github.test/pulls/2"}),
                _issue(3),
            ]
        )

        issues = call(recorder, "list_issues", "org", "repo")

        assert [issue.number for issue in issues] == [1, 3]

    def test_requests_open_issues_with_page_size(self):
        recorder = Recorder(json_body=[])
        call(recorder, "list_issues", "org", "repo", per_page=20)

        params = recorder.last.url.params
        assert params["state"] == "open"
        assert params["per_page"] == "20"

    def test_issue_fields_are_parsed(self):
        recorder = Recorder(json_body=[_issue(7, body=None)])

        (issue,) = call(recorder, "list_issues", "org", "repo")

        assert issue.author == "octocat"
        assert issue.labels == ["bug"]
        assert issue.body == ""


class TestFilterPullRequests:
    def test_keeps_order_of_real_issues(self):
        items = [{"number": 3}, {"number": 2, "pull_request": {}}, {"number": 1}]
        assert filter_pull_requests(items) == [{"number": 3}, {"number": 1}]


class TestFileContent:
    def test_content_is_base64_decoded_with_sha(self):
        encoded = base64.b64encode("print('hi')\n".encode()).decode()
        # GitHub wraps base64 content at 60 columns
        wrapped = "\n".join(encoded[i:i + 8] for i in range(0, len(encoded), 8))
        recorder = Recorder(json_body={"content": wrapped, "sha": "abc123"})

        result = call(recorder, "get_file_content", "org", "repo", "src/app.py", "main")

        assert result.content == "print('hi')\n"
        assert result.sha == "abc123"
        assert recorder.last.url.params["ref"] == "main"

    def test_missing_file_returns_empty_content(self):
        recorder = Recorder(status_code=404, json_body={"message": "Not Found"})

        result = call(recorder, "get_file_content", "org", "repo", "nope.py", "main")

        assert result.content == ""
        assert result.sha == ""
        assert not result.exists

    def test_other_errors_propagate(self):
        recorder = Recorder(status_code=403, json_body={"message": "Forbidden"})

        with pytest.raises(RemoteHostError):
            call(recorder, "get_file_content", "org", "repo", "a.py", "main")


class TestLabels:
    def test_remove_missing_label_is_success(self):
        recorder = Recorder(status_code=404, json_body={"message": "Label does not exist"})

        assert call(recorder, "remove_label", "org", "repo", 5, "needs-more-info") is None

    def test_remove_label_is_url_quoted(self):
        recorder = Recorder(json_body=[])
        call(recorder, "remove_label", "org", "repo", 5, "needs more info")

        assert recorder.last.method == "DELETE"
        assert recorder.last.url.raw_path.endswith(b"/labels/needs%20more%20info")

    def test_remove_label_other_errors_propagate(self):
        recorder = Recorder(status_code=500, text="error")

        with pytest.raises(RemoteHostError):
            call(recorder, "remove_label", "org", "repo", 5, "needs-more-info")

    def test_add_label_posts_label_list(self):
        recorder = Recorder(json_body=[{"name": "triage-complete"}])
        call(recorder, "add_label", "org", "repo", 5, "triage-complete")

        assert json.loads(recorder.last.content) == {"labels": ["triage-complete"]}


class TestPullRequestDiff:
    def test_diff_requested_with_diff_media_type(self):
        recorder = Recorder(text="diff --git a/x b/x\n")

        diff = call(recorder, "get_pull_request_diff", "org", "repo", 3)

        assert diff.startswith("diff --git")
        assert recorder.last.headers["Accept"] == DIFF_MEDIA_TYPE

    def test_diff_failure_degrades_to_placeholder(self):
        recorder = Recorder(status_code=500, text="error")

        assert call(recorder, "get_pull_request_diff", "org", "repo", 3) == DIFF_UNAVAILABLE


class TestRepoStructure:
    def test_tree_entries_are_parsed(self):
        recorder = Recorder(
            json_body={
                "tree": [
                    {"path": "src", "type": "tree", "sha": "t1"},
                    {"path": "src/app.py", "type": "blob", "sha": "b1"},
                ],
                "truncated": False,
            }
        )

        entries = call(recorder, "get_repo_structure", "org", "repo", "main")

        assert [(e.path, e.is_directory) for e in entries] == [
            ("src", True),
            ("src/app.py", False),
        ]
        assert recorder.last.url.params["recursive"] == "1"


class TestGitData:
    def test_create_branch_posts_full_ref(self):
        recorder = Recorder(status_code=201, json_body={"ref": "refs/heads/fix"})
        call(recorder, "create_branch", "org", "repo", "fix", "base123")

        assert json.loads(recorder.last.content) == {
            "ref": "refs/heads/fix",
            "sha": "base123",
        }

    def test_existing_branch_raises_branch_already_exists(self):
        recorder = Recorder(
            status_code=422,
            json_body={"message": "Reference already exists"},
        )

        with pytest.raises(BranchAlreadyExistsError) as exc_info:
            call(recorder, "create_branch", "org", "repo", "fix", "base123")

        assert exc_info.value.status_code == 422

    def test_other_unprocessable_errors_stay_generic(self):
        recorder = Recorder(status_code=422, json_body={"message": "Invalid sha"})

        with pytest.raises(RemoteHostError) as exc_info:
            call(recorder, "create_branch", "org", "repo", "fix", "bad")

        assert not isinstance(exc_info.value, BranchAlreadyExistsError)

    def test_create_tree_uses_base_tree_and_blob_entries(self):
        recorder = Recorder(status_code=201, json_body={"sha": "tree1"})
        tree = call(
            recorder,
            "create_tree",
            "org",
            "repo",
            "base123",
            [TreeItem(path="src/app.py", sha="blob1")],
        )

        assert tree.sha == "tree1"
        assert json.loads(recorder.last.content) == {
            "base_tree": "base123",
            "tree": [
                {"path": "src/app.py", "mode": "100644", "type": "blob", "sha": "blob1"}
            ],
        }

    def test_create_commit_has_single_parent(self):
        recorder = Recorder(status_code=201, json_body={"sha": "commit1"})
        call(recorder, "create_commit", "org", "repo", "fix: thing", "tree1", "base123")

        assert json.loads(recorder.last.content) == {
            "message": "fix: thing",
            "tree": "tree1",
            "parents": ["base123"],
        }

    def test_update_ref_patches_heads_ref(self):
        recorder = Recorder(json_body={"ref": "refs/heads/fix"})
        call(recorder, "update_ref", "org", "repo", "heads/fix", "commit1", force=True)

        assert recorder.last.method == "PATCH"
        assert recorder.last.url.path == "/repos/org/repo/git/refs/heads/fix"
        assert json.loads(recorder.last.content) == {"sha": "commit1", "force": True}


class TestListings:
    def test_pull_requests_parse_head_and_base(self):
        recorder = Recorder(
            json_body=[
                {
                    "number": 4,
                    "title": "Add cache",
                    "user": {"login": "bob"},
                    "head": {"ref": "cache", "sha": "h1"},
                    "base": {"ref": "main"},
                }
            ]
        )

        (pr,) = call(recorder, "list_pull_requests", "org", "repo")

        assert (pr.head_ref, pr.head_sha, pr.base_ref) == ("cache", "h1", "main")
        assert recorder.last.url.params["state"] == "open"

    def test_workflow_runs_are_unwrapped(self):
        recorder = Recorder(
            json_body={
                "total_count": 1,
                "workflow_runs": [{"id": 77, "name": "CI", "conclusion": "failure"}],
            }
        )

        (run,) = call(recorder, "list_workflow_runs", "org", "repo", per_page=5)

        assert run.id == 77
        assert recorder.last.url.params["per_page"] == "5"

    def test_failed_jobs_are_flagged(self):
        recorder = Recorder(
            json_body={"jobs": [{"id": 1, "conclusion": "success"}, {"id": 2, "conclusion": "failure"}]}
        )

        jobs = call(recorder, "list_workflow_jobs", "org", "repo", 77)

        assert [job.failed for job in jobs] == [False, True]

    def test_job_logs_are_plain_text(self):
        recorder = Recorder(text="##[error]Process completed with exit code 1.")

        logs = call(recorder, "get_job_logs", "org", "repo", 2)

        assert logs.startswith("##[error]")
        assert recorder.last.url.path == "/repos/org/repo/actions/jobs/2/logs"
