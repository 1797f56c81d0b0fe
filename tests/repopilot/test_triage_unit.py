"""Unit tests for the triage pass and the weekly follow-up scan."""

import asyncio
from unittest.mock import AsyncMock

from src.repopilot.ai.engine import AIProviderError
from src.repopilot.ai.models import TriageResult
from src.repopilot.events import EventType
from src.repopilot.github.client import RemoteHostError
from src.repopilot.github.models import Issue, IssueComment, RepositoryRef
from src.repopilot.pipelines.formatting import NEEDS_INFO_LABEL, TRIAGE_SIGNATURE
from src.repopilot.pipelines.triage import (
    TRIAGE_COMPLETE_LABEL,
    ScanStatus,
    TriageManager,
    author_responded,
    needs_triage,
)


def run_async(coro):
    return asyncio.run(coro)


REPO = RepositoryRef(owner="org", name="repo")


def _issue(number: int, body: str = "", labels=None, author: str = "alice") -> Issue:
    return Issue(
        number=number,
        title=f"Issue {number}",
        body=body,
        author=author,
        labels=labels or [],
    )


def _comment(author: str, comment_id: int = 1) -> IssueComment:
    return IssueComment(id=comment_id, author=author, body="...")


async def _judge(issue, api_key, model=None, repo=None) -> TriageResult:
    """Stand-in for the model: only issues with reproduction steps are actionable."""
    if "Steps to reproduce" in issue.body:
        return TriageResult(needs_info=False)
    return TriageResult(
        needs_info=True,
        missing_info_reason="No reproduction steps.",
        question="Could you share the steps to reproduce this?",
    )


def _manager(issues, emitter=None):
    client = AsyncMock()
    client.list_issues.return_value = issues
    engine = AsyncMock()
    engine.triage_issue.side_effect = _judge
    return TriageManager(client, engine, emitter=emitter), client, engine


class TestTriagePass:
    def test_vague_issue_gets_label_and_question(self):
        manager, client, _ = _manager([_issue(1, body="Fix this")])

        report = run_async(manager.run_triage_pass("org", "repo", api_key="key"))

        assert [r.status for r in report.results] == [ScanStatus.NEEDS_INFO]
        assert report.results[0].reason == "No reproduction steps."
        client.add_label.assert_awaited_once_with("org", "repo", 1, NEEDS_INFO_LABEL)
        body = client.create_comment.call_args.args[3]
        assert body.startswith("Hi @alice, thanks for opening this issue!")
        assert "Could you share the steps to reproduce this?" in body
        assert body.endswith(TRIAGE_SIGNATURE)

    def test_actionable_issue_is_marked_complete_without_comment(self):
        issue = _issue(2, body="Steps to reproduce: 1. run it. Expected: ok. Actual: crash.")
        manager, client, _ = _manager([issue])

        report = run_async(manager.run_triage_pass("org", "repo", api_key="key"))

        assert [r.status for r in report.results] == [ScanStatus.TRIAGED]
        client.add_label.assert_awaited_once_with("org", "repo", 2, TRIAGE_COMPLETE_LABEL)
        client.create_comment.assert_not_awaited()

    def test_already_labelled_issues_are_skipped(self):
        issues = [
            _issue(1, labels=[NEEDS_INFO_LABEL]),
            _issue(2, labels=[TRIAGE_COMPLETE_LABEL, "bug"]),
            _issue(3, body="Fix this"),
        ]
        manager, _, engine = _manager(issues)

        report = run_async(manager.run_triage_pass("org", "repo", api_key="key"))

        assert report.processed == 1
        assert [r.issue for r in report.results] == [3]
        assert engine.triage_issue.await_count == 1

    def test_lists_one_page_of_open_issues(self):
        manager, client, _ = _manager([])

        run_async(manager.run_triage_pass("org", "repo", api_key="key"))

        client.list_issues.assert_awaited_once_with("org", "repo", per_page=20)

    def test_failure_on_one_issue_does_not_stop_the_pass(self):
        issues = [_issue(1, body="Fix this"), _issue(2, body="Fix that")]
        manager, client, _ = _manager(issues)
        client.add_label.side_effect = [
            RemoteHostError("GitHub API error 403: Forbidden", status_code=403),
            None,
        ]

        report = run_async(manager.run_triage_pass("org", "repo", api_key="key"))

        assert [(r.issue, r.status) for r in report.results] == [
            (1, ScanStatus.ERROR),
            (2, ScanStatus.NEEDS_INFO),
        ]
        assert report.results[0].error == "GitHub API error 403: Forbidden"

    def test_model_failure_is_recorded_per_issue(self):
        manager, _, engine = _manager([_issue(1), _issue(2)])
        engine.triage_issue.side_effect = [
            AIProviderError("quota exceeded"),
            TriageResult(needs_info=False),
        ]

        report = run_async(manager.run_triage_pass("org", "repo", api_key="key"))

        assert report.status_counts() == {"error": 1, "triaged": 1}

    def test_scan_completed_event_is_emitted(self):
        emitter = AsyncMock()
        manager, _, _ = _manager([_issue(1, body="Fix this")], emitter=emitter)

        run_async(manager.run_triage_pass("org", "repo", api_key="key"))

        event = emitter.emit.call_args.args[0]
        assert event.event_type == EventType.SCAN_COMPLETED
        assert event.details["scan"] == "triage"
        assert event.details["processed"] == 1


class TestWeeklyScan:
    def test_author_reply_removes_label_and_acknowledges(self):
        issue = _issue(5, labels=[NEEDS_INFO_LABEL])
        manager, client, _ = _manager([issue])
        client.list_issue_comments.return_value = [
            _comment("triage-bot", 1),
            _comment("alice", 2),
        ]

        report = run_async(manager.run_weekly_scan("org", "repo"))

        (result,) = report.results
        assert result.status == ScanStatus.UPDATED
        assert result.action == "removed-label"
        client.remove_label.assert_awaited_once_with("org", "repo", 5, NEEDS_INFO_LABEL)
        body = client.create_comment.call_args.args[3]
        assert f"'{NEEDS_INFO_LABEL}'" in body

    def test_other_last_commenter_leaves_issue_waiting(self):
        issue = _issue(6, labels=[NEEDS_INFO_LABEL])
        manager, client, _ = _manager([issue])
        client.list_issue_comments.return_value = [
            _comment("alice", 1),
            _comment("bob", 2),
        ]

        report = run_async(manager.run_weekly_scan("org", "repo"))

        assert [r.status for r in report.results] == [ScanStatus.NO_USER_RESPONSE]
        client.remove_label.assert_not_awaited()
        client.create_comment.assert_not_awaited()

    def test_issue_without_comments_is_left_out_of_report(self):
        manager, client, _ = _manager([_issue(7, labels=[NEEDS_INFO_LABEL])])
        client.list_issue_comments.return_value = []

        report = run_async(manager.run_weekly_scan("org", "repo"))

        assert report.processed == 0
        assert report.results == []

    def test_only_waiting_issues_are_checked(self):
        issues = [_issue(8), _issue(9, labels=[NEEDS_INFO_LABEL])]
        manager, client, _ = _manager(issues)
        client.list_issue_comments.return_value = [_comment("alice")]

        run_async(manager.run_weekly_scan("org", "repo"))

        client.list_issue_comments.assert_awaited_once_with("org", "repo", 9)

    def test_failure_on_one_issue_does_not_stop_the_scan(self):
        issues = [
            _issue(10, labels=[NEEDS_INFO_LABEL]),
            _issue(11, labels=[NEEDS_INFO_LABEL]),
        ]
        manager, client, _ = _manager(issues)
        client.list_issue_comments.side_effect = [
            RemoteHostError("GitHub API error 502", status_code=502),
            [_comment("alice")],
        ]

        report = run_async(manager.run_weekly_scan("org", "repo"))

        assert [(r.issue, r.status) for r in report.results] == [
            (10, ScanStatus.ERROR),
            (11, ScanStatus.UPDATED),
        ]


class TestHelpers:
    def test_needs_triage_requires_open_state(self):
        closed = Issue(number=1, title="t", author="a", state="closed")
        assert not needs_triage(closed)

    def test_author_responded_looks_at_last_comment_only(self):
        issue = _issue(1)
        assert author_responded(issue, [_comment("bob"), _comment("alice")])
        assert not author_responded(issue, [_comment("alice"), _comment("bob")])
        assert not author_responded(issue, [])
