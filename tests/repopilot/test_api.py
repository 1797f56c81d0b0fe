"""HTTP-level tests for the FastAPI application.

The app is built with an in-memory settings store, a stub chat model and
an AsyncMock GitHub client, so every route runs its real pipeline code.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage
from prometheus_client import CollectorRegistry

from src.repopilot.config import RepoPilotSettings
from src.repopilot.github.client import RemoteHostError
from src.repopilot.github.models import (
    CreatedPullRequest,
    GitObject,
    Issue,
    PullRequest,
    RepositoryRef,
    TreeEntry,
    WorkflowJob,
    WorkflowRun,
)
from src.repopilot.main import build_services, create_app
from src.repopilot.session import InMemorySettingsStore, UserSettings


USER_HEADERS = {"X-User-Id": "u1"}


class Harness:
    """Holds the fakes behind one app instance."""

    def __init__(self):
        self.github = AsyncMock()
        self.github.get_repository.return_value = RepositoryRef(owner="org", name="repo")
        self.github.get_repo_structure.return_value = [
            TreeEntry(path="src/app.py", type="blob", sha="b")
        ]
        self.tokens = []
        self.model = MagicMock()
        self.model.ainvoke = AsyncMock(return_value=AIMessage(content="{}"))
        self.settings_store = InMemorySettingsStore(
            {
                "u1": UserSettings(github_token="ghp_u1", ai_api_key="ai_u1"),
                "no-key": UserSettings(github_token="ghp_nokey"),
            }
        )

    def respond(self, data) -> None:
        content = data if isinstance(data, str) else json.dumps(data)
        self.model.ainvoke.return_value = AIMessage(content=content)

    def client_factory(self, token: str):
        self.tokens.append(token)
        return self.github

    def services(self, settings: RepoPilotSettings):
        return build_services(
            settings,
            settings_store=self.settings_store,
            model_factory=lambda request: self.model,
            client_factory=self.client_factory,
            metrics_registry=CollectorRegistry(),
        )


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def client(harness):
    app = create_app(RepoPilotSettings(), services_factory=harness.services)
    with TestClient(app) as test_client:
        yield test_client


class TestProbes:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_metrics_exposition(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")


class TestAnalyzeIssue:
    def test_returns_camel_case_analysis(self, client, harness):
        harness.github.get_issue.return_value = Issue(number=3, title="Crash", author="alice")
        harness.respond(
            {
                "analysis": "Null check missing.",
                "suggestedFix": "Add a guard.",
                "complexity": "low",
                "shouldProposeFix": False,
            }
        )

        response = client.post(
            "/api/repos/org/repo/issues/3/analyze",
            headers=USER_HEADERS,
            json={"feedback": "Keep it small"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["suggestedFix"] == "Add a guard."
        assert body["shouldProposeFix"] is False
        assert "fix" not in body
        assert harness.tokens == ["ghp_u1"]

    def test_missing_user_header_is_bad_request(self, client, harness):
        response = client.post("/api/repos/org/repo/issues/3/analyze")

        assert response.status_code == 400
        assert harness.tokens == []

    def test_missing_ai_key_is_bad_request(self, client, harness):
        response = client.post(
            "/api/repos/org/repo/issues/3/analyze", headers={"X-User-Id": "no-key"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "AI API key missing."}
        assert harness.tokens == []

    def test_github_failure_maps_to_bad_gateway(self, client, harness):
        harness.github.get_issue.side_effect = RemoteHostError(
            "GitHub API error 404: Not Found", status_code=404
        )

        response = client.post("/api/repos/org/repo/issues/99/analyze", headers=USER_HEADERS)

        assert response.status_code == 502
        assert response.json() == {"error": "GitHub API error 404: Not Found", "status_code": 404}

    def test_unparseable_model_output_maps_to_bad_gateway(self, client, harness):
        harness.github.get_issue.return_value = Issue(number=3, title="Crash", author="alice")
        harness.respond("I think the issue is...")

        response = client.post("/api/repos/org/repo/issues/3/analyze", headers=USER_HEADERS)

        assert response.status_code == 502


class TestWorkflowRun:
    def test_run_without_failure_skips_model(self, client, harness):
        harness.github.list_workflow_jobs.return_value = [WorkflowJob(id=1, conclusion="success")]

        response = client.post("/api/repos/org/repo/runs/5/analyze", headers=USER_HEADERS)

        assert response.status_code == 200
        assert response.json()["analysis"] == "No failed job found for this run."
        harness.model.ainvoke.assert_not_awaited()


class TestApplyFix:
    PROPOSAL = {
        "commitMessage": "fix: guard",
        "branchName": "ai-fix/issue-3-guard",
        "prTitle": "Add guard",
        "prBody": "Adds a guard.",
        "changes": [{"filePath": "src/app.py", "newContent": "x = 1\n"}],
    }

    def test_publishes_pull_request(self, client, harness):
        harness.github.get_branch_sha.return_value = "base"
        harness.github.create_blob.return_value = GitObject(sha="blob")
        harness.github.create_tree.return_value = GitObject(sha="tree")
        harness.github.create_commit.return_value = GitObject(sha="commit")
        harness.github.create_pull_request.return_value = CreatedPullRequest(
            number=12, html_url="https://github.com/org/repo/pull/12"
        )

        response = client.post("/api/repos/org/repo/fixes", headers=USER_HEADERS, json=self.PROPOSAL)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "prUrl": "https://github.com/org/repo/pull/12",
            "prNumber": 12,
            "branchName": "ai-fix/issue-3-guard",
            "commitSha": "commit",
        }

    def test_failed_step_is_reported(self, client, harness):
        harness.github.get_branch_sha.return_value = "base"
        harness.github.create_branch.side_effect = RemoteHostError(
            "GitHub API error 422: Reference already exists", status_code=422
        )

        response = client.post("/api/repos/org/repo/fixes", headers=USER_HEADERS, json=self.PROPOSAL)

        assert response.status_code == 502
        assert response.json()["step"] == "create_branch"

    def test_unknown_repository_reports_resolve_base(self, client, harness):
        harness.github.get_repository.side_effect = RemoteHostError(
            "GitHub API error 404: Not Found", status_code=404
        )

        response = client.post("/api/repos/org/gone/fixes", headers=USER_HEADERS, json=self.PROPOSAL)

        assert response.status_code == 502
        assert response.json() == {"error": "GitHub API error 404: Not Found", "step": "resolve_base"}

    def test_proposal_without_changes_is_rejected(self, client, harness):
        proposal = dict(self.PROPOSAL, changes=[])

        response = client.post("/api/repos/org/repo/fixes", headers=USER_HEADERS, json=proposal)

        assert response.status_code == 422
        assert harness.tokens == []


class TestBatchRoutes:
    def test_triage_requires_all_parameters(self, client, harness):
        response = client.post("/api/triage", json={"owner": "org", "repo": "repo", "token": "t"})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Missing required parameters")
        assert harness.tokens == []

    def test_triage_pass_reports_results(self, client, harness):
        harness.github.list_issues.return_value = [
            Issue(number=1, title="Broken", body="Fix this", author="alice")
        ]
        harness.respond(
            {"needsInfo": True, "missingInfoReason": "vague", "question": "What happens?"}
        )

        response = client.post(
            "/api/triage",
            json={"owner": "org", "repo": "repo", "token": "ghp_batch", "aiKey": "ai"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "processed": 1,
            "results": [{"issue": 1, "status": "needs-info", "reason": "vague"}],
        }
        assert harness.tokens == ["ghp_batch"]
        harness.github.close.assert_awaited()

    def test_weekly_scan_requires_token(self, client):
        response = client.post("/api/cron/weekly-scan", json={"owner": "org", "repo": "repo"})

        assert response.status_code == 400

    def test_weekly_scan_reports_results(self, client, harness):
        harness.github.list_issues.return_value = [
            Issue(number=4, title="Q", author="alice", labels=["needs-more-info"])
        ]
        harness.github.list_issue_comments.return_value = []

        response = client.post(
            "/api/cron/weekly-scan",
            json={"owner": "org", "repo": "repo", "token": "ghp_batch"},
        )

        assert response.status_code == 200
        assert response.json() == {"processed": 0, "results": []}


class TestListings:
    def test_open_issues_use_callers_token(self, client, harness):
        harness.github.list_issues.return_value = [Issue(number=7, title="Crash", author="alice")]

        response = client.get("/api/repos/org/repo/issues", headers=USER_HEADERS)

        assert response.status_code == 200
        assert [issue["number"] for issue in response.json()] == [7]
        harness.github.list_issues.assert_awaited_once_with("org", "repo", per_page=20)
        assert harness.tokens == ["ghp_u1"]
        harness.github.close.assert_awaited_once()

    def test_open_pull_requests(self, client, harness):
        harness.github.list_pull_requests.return_value = [
            PullRequest(number=4, title="Add cache", head_ref="cache", base_ref="main")
        ]

        response = client.get("/api/repos/org/repo/pulls", headers=USER_HEADERS)

        assert response.status_code == 200
        assert response.json()[0]["head_ref"] == "cache"

    def test_workflow_runs_use_run_page_size(self, client, harness):
        harness.github.list_workflow_runs.return_value = [
            WorkflowRun(id=77, name="CI", conclusion="failure")
        ]

        response = client.get("/api/repos/org/repo/runs", headers=USER_HEADERS)

        assert response.status_code == 200
        assert response.json()[0]["id"] == 77
        harness.github.list_workflow_runs.assert_awaited_once_with("org", "repo", per_page=10)

    def test_listing_requires_user(self, client, harness):
        response = client.get("/api/repos/org/repo/issues")

        assert response.status_code == 400
        assert harness.tokens == []


class TestStoredResults:
    def test_issue_analysis_is_readable_after_analyze(self, client, harness):
        harness.github.get_issue.return_value = Issue(number=3, title="Crash", author="alice")
        harness.respond(
            {
                "analysis": "Null check missing.",
                "suggestedFix": "Add a guard.",
                "complexity": "medium",
            }
        )
        client.post("/api/repos/org/repo/issues/3/analyze", headers=USER_HEADERS)

        response = client.get("/api/repos/org/repo/issues/3/analysis")

        assert response.status_code == 200
        assert response.json()["complexity"] == "medium"

    def test_documentation_is_readable_after_generation(self, client, harness):
        harness.github.get_readme.return_value = "# repo"
        harness.respond("# Architecture\n\nOne service.")
        client.post("/api/repos/org/repo/docs", headers=USER_HEADERS)

        response = client.get("/api/repos/org/repo/docs")

        assert response.status_code == 200
        assert response.json()["content"].startswith("# Architecture")

    @pytest.mark.parametrize(
        "path",
        [
            "/api/repos/org/repo/issues/3/analysis",
            "/api/repos/org/repo/pulls/4/review",
            "/api/repos/org/repo/runs/5/analysis",
            "/api/repos/org/repo/docs",
        ],
    )
    def test_missing_result_is_not_found(self, client, path):
        response = client.get(path)

        assert response.status_code == 404
        assert "error" in response.json()


class TestEventWiring:
    def test_completed_analysis_is_counted_in_metrics(self, client, harness):
        harness.github.get_issue.return_value = Issue(number=3, title="Crash", author="alice")
        harness.respond({"analysis": "a", "suggestedFix": "s", "complexity": "low"})
        client.post("/api/repos/org/repo/issues/3/analyze", headers=USER_HEADERS)

        output = client.get("/metrics").text

        assert 'repopilot_analyses_total{repository="org/repo",task="issue_analysis"} 1.0' in output
