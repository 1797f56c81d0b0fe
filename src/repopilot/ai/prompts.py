"""Prompt builders for each analysis task.

Each builder turns a ContextBundle into a (system, user) prompt pair. All
repository text passes through the bundle's capped accessors, so no
context field can exceed its character budget in the serialized prompt.

Source:
- src/repopilot/ai/context.py (ContextBundle, caps)
"""

from typing import Tuple

from src.repopilot.ai.context import ISSUE_STRUCTURE_LIMIT, CI_STRUCTURE_LIMIT, ContextBundle


SENIOR_ENGINEER_ROLE = "You are a Senior Software Engineer."
DEVOPS_ROLE = "You are a Senior DevOps and Software Engineer."
TRIAGE_ROLE = "You are a Senior Project Manager and Technical Lead."
DOCS_ROLE = "You are a technical writer documenting a software repository."

FULL_CONTENT_RULE = (
    "The fix should specify the full, updated content for each file. "
    "Do not just provide diffs or snippets."
)

JSON_ONLY_RULE = (
    "You MUST respond with valid JSON only, matching the requested schema. "
    "Do not include any text before or after the JSON object."
)


def _labels(bundle: ContextBundle) -> str:
    if bundle.issue is None or not bundle.issue.labels:
        return "none"
    return ", ".join(bundle.issue.labels)


def build_issue_analysis_prompt(bundle: ContextBundle) -> Tuple[str, str]:
    """Build the prompt for analysing an issue and proposing a fix."""
    issue = bundle.issue
    if issue is None:
        raise ValueError("issue analysis requires an issue in the context bundle")

    feedback_section = ""
    if bundle.feedback:
        feedback_section = f"""
USER FEEDBACK ON PREVIOUS PROPOSAL:
"{bundle.feedback}"
Please adjust your proposal to address this feedback.
"""

    user_prompt = f"""Analyze this GitHub issue in the context of the repository structure and suggest a technical fix or implementation plan.

Repository: {bundle.repository.full_name}
Issue Title: {issue.title}
Issue Body: {issue.body or "No description provided."}
Labels: {_labels(bundle)}

Repository Structure (Recursive Tree):
{bundle.structure_text(ISSUE_STRUCTURE_LIMIT)}
(Note: Structure truncated if too large)
{feedback_section}
If you find issues that can be fixed with high confidence based on the structure (or if you can infer the changes needed), set "shouldProposeFix" to true and provide the "fix" object.
{FULL_CONTENT_RULE}
Ensure the proposed branch name is unique and descriptive (e.g., "ai-fix/issue-{issue.number}-summary")."""

    return f"{SENIOR_ENGINEER_ROLE} {JSON_ONLY_RULE}", user_prompt


def build_pr_review_prompt(bundle: ContextBundle) -> Tuple[str, str]:
    """Build the prompt for reviewing a pull request."""
    pr = bundle.pull_request
    if pr is None:
        raise ValueError("PR review requires a pull request in the context bundle")

    user_prompt = f"""Perform a rigorous code review on this PR.
After the review, determine if you can confidently propose a concrete fix to address any issues or improvements found.

Repository: {bundle.repository.full_name}
PR Title: {pr.title}
PR Body: {pr.body or "No description provided."}
Diff Data:
```diff
{bundle.diff_text()}
```
(Note: Diff truncated to fit context if necessary)

Full content of changed files (if available for context):
{bundle.file_context_text()}
(Note: File contents may be truncated)

Check for:
1. Logic errors
2. Security vulnerabilities
3. Performance bottlenecks
4. Adherence to best practices
5. Overall code quality and maintainability.

If you find issues that can be fixed with high confidence, set "shouldProposeFix" to true and provide the "fix" object.
{FULL_CONTENT_RULE}
Ensure the proposed branch name is unique and descriptive (e.g., "ai-fix/pr-{pr.number}-issue-summary")."""

    return f"{SENIOR_ENGINEER_ROLE} {JSON_ONLY_RULE}", user_prompt


def build_ci_failure_prompt(bundle: ContextBundle) -> Tuple[str, str]:
    """Build the prompt for diagnosing a failed workflow run."""
    user_prompt = f"""Analyze these CI/CD workflow logs to identify the root cause of the failure and propose a technical fix.

Repository: {bundle.repository.full_name}
Repository Structure:
{bundle.structure_text(CI_STRUCTURE_LIMIT)}

Workflow Logs:
```
{bundle.logs_text()}
```
(Note: Logs/Structure truncated if too large)

Task:
1. Identify the specific error that caused the build/test to fail.
2. Suggest a concrete fix in the code if possible.
3. If you are confident, set "shouldProposeFix" to true and provide the "fix" object with full file contents.

Ensure the proposed branch name is unique and descriptive (e.g., "ai-fix/ci-failure-summary")."""

    return f"{DEVOPS_ROLE} {JSON_ONLY_RULE}", user_prompt


def build_triage_prompt(bundle: ContextBundle) -> Tuple[str, str]:
    """Build the prompt deciding whether an issue is actionable as written."""
    issue = bundle.issue
    if issue is None:
        raise ValueError("triage requires an issue in the context bundle")

    user_prompt = f"""Analyze this GitHub issue to determine if it has sufficient information for a developer to start working on it.

Issue Title: {issue.title}
Issue Body: {issue.body or "No description provided."}
Labels: {_labels(bundle)}
Created By: {issue.author}

Criteria for "Sufficient Information":
1. Clear goal or bug report.
2. Reproduction steps (if bug).
3. Expected vs Actual behavior (if bug).
4. Enough context to understand the scope.

If the issue is vague, unclear, or completely empty, set "needsInfo" to true and provide a polite, professional, and specific question to ask the user.
If the issue is clear (even if small), set "needsInfo" to false.

Note: If the issue body is empty or extremely short (e.g. "Fix this"), it definitely needs info."""

    return f"{TRIAGE_ROLE} {JSON_ONLY_RULE}", user_prompt


def build_documentation_prompt(bundle: ContextBundle) -> Tuple[str, str]:
    """Build the prompt for generating repository documentation."""
    user_prompt = f"""Generate comprehensive technical documentation for the repository "{bundle.repository.name}".
Use the following codebase context (README/File Summary): {bundle.readme_text()}

The documentation should include:
1. System Architecture Overview
2. Getting Started Guide
3. API Reference (if applicable)
4. Future Roadmap"""

    return f"{DOCS_ROLE} Respond in Markdown.", user_prompt
