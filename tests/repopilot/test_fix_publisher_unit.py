"""Unit tests for Fix Proposal publication.

The GitHub client is an AsyncMock, so the tests check the order of the
publish steps, the payloads handed to each, and where the sequence stops
on failure.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.repopilot.ai.models import FileChange, FixProposal
from src.repopilot.events import EventType
from src.repopilot.github.client import BranchAlreadyExistsError, RemoteHostError
from src.repopilot.github.fix_publisher import (
    FixApplicationError,
    FixPublisher,
    PublishStep,
)
from src.repopilot.github.models import CreatedPullRequest, GitObject, RepositoryRef


def run_async(coro):
    return asyncio.run(coro)


REPO = RepositoryRef(owner="org", name="repo", default_branch="main")


def _proposal(paths=("src/a.py", "src/b.py")) -> FixProposal:
    return FixProposal(
        commit_message="fix: handle empty input",
        branch_name="ai-fix/issue-7-empty-input",
        pr_title="Handle empty input",
        pr_body="Adds a guard.",
        changes=[FileChange(file_path=p, new_content=f"# {p}\n") for p in paths],
    )


def _client() -> AsyncMock:
    client = AsyncMock()
    client.get_branch_sha.return_value = "base-sha"
    client.create_branch.return_value = {"ref": "refs/heads/x"}
    client.create_blob.side_effect = [
        GitObject(sha="blob-1"),
        GitObject(sha="blob-2"),
    ]
    client.create_tree.return_value = GitObject(sha="tree-sha")
    client.create_commit.return_value = GitObject(sha="commit-sha")
    client.update_ref.return_value = {}
    client.create_pull_request.return_value = CreatedPullRequest(
        number=42, html_url="https://github.com/org/repo/pull/42"
    )
    return client


def _call_names(client: AsyncMock):
    return [name for name, _, _ in client.mock_calls]


class TestApplyFix:
    def test_steps_run_in_order(self):
        client = _client()

        run_async(FixPublisher(client).apply_fix(REPO, _proposal()))

        assert _call_names(client) == [
            "get_branch_sha",
            "create_branch",
            "create_blob",
            "create_blob",
            "create_tree",
            "create_commit",
            "update_ref",
            "create_pull_request",
        ]

    def test_returns_pull_request_details(self):
        client = _client()

        result = run_async(FixPublisher(client).apply_fix(REPO, _proposal()))

        assert result.success is True
        assert result.pr_url == "https://github.com/org/repo/pull/42"
        assert result.pr_number == 42
        assert result.commit_sha == "commit-sha"
        assert result.branch_name == "ai-fix/issue-7-empty-input"

    def test_payloads_chain_through_steps(self):
        client = _client()

        run_async(FixPublisher(client).apply_fix(REPO, _proposal()))

        client.get_branch_sha.assert_awaited_once_with("org", "repo", "main")
        client.create_branch.assert_awaited_once_with(
            "org", "repo", "ai-fix/issue-7-empty-input", "base-sha"
        )

        base_tree, items = client.create_tree.call_args.args[2:]
        assert base_tree == "base-sha"
        assert [(i.path, i.mode, i.type, i.sha) for i in items] == [
            ("src/a.py", "100644", "blob", "blob-1"),
            ("src/b.py", "100644", "blob", "blob-2"),
        ]

        client.create_commit.assert_awaited_once_with(
            "org", "repo", "fix: handle empty input", "tree-sha", "base-sha"
        )
        client.update_ref.assert_awaited_once_with(
            "org", "repo", "heads/ai-fix/issue-7-empty-input", "commit-sha", force=True
        )
        client.create_pull_request.assert_awaited_once_with(
            "org",
            "repo",
            title="Handle empty input",
            body="Adds a guard.",
            head="ai-fix/issue-7-empty-input",
            base="main",
        )

    def test_blobs_hold_full_file_content(self):
        client = _client()

        run_async(FixPublisher(client).apply_fix(REPO, _proposal()))

        contents = [c.args[2] for c in client.create_blob.call_args_list]
        assert contents == ["# src/a.py\n", "# src/b.py\n"]


class TestFailures:
    def test_tree_failure_stops_remaining_steps(self):
        client = _client()
        client.create_tree.side_effect = RemoteHostError("GitHub API error 422: bad tree", status_code=422)

        with pytest.raises(FixApplicationError) as exc_info:
            run_async(FixPublisher(client).apply_fix(REPO, _proposal()))

        assert exc_info.value.step == PublishStep.CREATE_TREE
        assert exc_info.value.message == "GitHub API error 422: bad tree"
        assert isinstance(exc_info.value.cause, RemoteHostError)
        client.create_commit.assert_not_awaited()
        client.update_ref.assert_not_awaited()
        client.create_pull_request.assert_not_awaited()

    def test_existing_branch_fails_at_branch_step(self):
        client = _client()
        client.create_branch.side_effect = BranchAlreadyExistsError(
            "GitHub API error 422: Reference already exists", status_code=422
        )

        with pytest.raises(FixApplicationError) as exc_info:
            run_async(FixPublisher(client).apply_fix(REPO, _proposal()))

        assert exc_info.value.step == PublishStep.CREATE_BRANCH
        assert isinstance(exc_info.value.cause, BranchAlreadyExistsError)
        client.create_blob.assert_not_awaited()

    def test_pull_request_failure_leaves_branch_in_place(self):
        client = _client()
        client.create_pull_request.side_effect = RemoteHostError("GitHub API error 422", status_code=422)

        with pytest.raises(FixApplicationError) as exc_info:
            run_async(FixPublisher(client).apply_fix(REPO, _proposal()))

        assert exc_info.value.step == PublishStep.CREATE_PULL_REQUEST
        # No compensating calls are made
        assert "delete_ref" not in _call_names(client)

    def test_proposal_without_changes_rejected_before_io(self):
        client = _client()
        proposal = FixProposal.model_construct(
            commit_message="fix",
            branch_name="b",
            pr_title="t",
            pr_body="",
            changes=[],
        )

        with pytest.raises(FixApplicationError) as exc_info:
            run_async(FixPublisher(client).apply_fix(REPO, proposal))

        assert exc_info.value.step == PublishStep.VALIDATE
        assert client.mock_calls == []


class TestEvents:
    def test_success_emits_fix_published(self):
        emitter = AsyncMock()

        run_async(FixPublisher(_client(), emitter=emitter).apply_fix(REPO, _proposal()))

        event = emitter.emit.call_args.args[0]
        assert event.event_type == EventType.FIX_PUBLISHED
        assert event.details["pr_number"] == 42

    def test_failure_emits_error_with_step(self):
        client = _client()
        client.create_commit.side_effect = RemoteHostError("boom", status_code=500)
        emitter = AsyncMock()

        with pytest.raises(FixApplicationError):
            run_async(FixPublisher(client, emitter=emitter).apply_fix(REPO, _proposal()))

        event = emitter.emit.call_args.args[0]
        assert event.event_type == EventType.ERROR
        assert event.details["step"] == PublishStep.CREATE_COMMIT

    def test_emitter_failure_does_not_change_outcome(self):
        emitter = AsyncMock()
        emitter.emit.side_effect = RuntimeError("sink down")

        result = run_async(FixPublisher(_client(), emitter=emitter).apply_fix(REPO, _proposal()))

        assert result.pr_number == 42
