"""AI proposal engine: structured analyses and Fix Proposals.

This module implements the ProposalEngine, which turns a ContextBundle
into a validated analysis result for one of five tasks:
- Issue analysis (optional Fix Proposal)
- Pull request review (optional Fix Proposal)
- CI failure analysis (optional Fix Proposal)
- Issue triage (no Fix Proposal)
- Documentation generation (free-form markdown)

Each structured request declares a strict response schema. The response
is parsed, validated into the task's result model, and the actionability
invariant is enforced centrally: a result only carries a ``fix`` when the
model signalled ``shouldProposeFix`` AND the fix is structurally complete.
A confident signal without a usable fix is downgraded, never partially
trusted.

Source:
- src/repopilot/ai/context.py (ContextBundle)
- src/repopilot/ai/prompts.py (prompt builders)
- src/repopilot/ai/schemas.py (response schemas)
- src/repopilot/ai/models.py (result models)
- src/repopilot/ai/llm.py (chat model factory)
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, ValidationError

from src.repopilot.ai.context import ContextBundle, FileContext
from src.repopilot.ai.llm import ChatModelFactory, ModelRequest, default_model_factory
from src.repopilot.ai.models import (
    RESULT_TYPES,
    AnalysisResult,
    AnalysisTask,
    CIAnalysis,
    DocumentationResult,
    FixProposal,
    IssueAnalysis,
    PRReview,
    ProposingResult,
    TriageResult,
)
from src.repopilot.ai.prompts import (
    build_ci_failure_prompt,
    build_documentation_prompt,
    build_issue_analysis_prompt,
    build_pr_review_prompt,
    build_triage_prompt,
)
from src.repopilot.ai.schemas import schema_for
from src.repopilot.config import RepoPilotSettings
from src.repopilot.github.models import Issue, PullRequest, RepositoryRef
from src.repopilot.session import ConfigurationError


logger = logging.getLogger(__name__)


DEFAULT_TRIAGE_QUESTION = (
    "Could you provide more details about what you're trying to accomplish, "
    "including the expected and actual behavior?"
)


PROMPT_BUILDERS: Dict[AnalysisTask, Callable[[ContextBundle], Tuple[str, str]]] = {
    AnalysisTask.ISSUE_ANALYSIS: build_issue_analysis_prompt,
    AnalysisTask.PR_REVIEW: build_pr_review_prompt,
    AnalysisTask.CI_FAILURE: build_ci_failure_prompt,
    AnalysisTask.TRIAGE: build_triage_prompt,
    AnalysisTask.DOCUMENTATION: build_documentation_prompt,
}


class AIProviderError(Exception):
    """Raised when the model call itself fails.

    Attributes:
        message: Human-readable error description, including the
            upstream message.
        cause: The underlying exception that caused the failure.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class AIResponseParseError(Exception):
    """Raised when the model output is not a valid result for the task.

    Attributes:
        message: Human-readable error description.
        response_preview: The first characters of the raw response.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        response_preview: str = "",
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.response_preview = response_preview
        self.cause = cause
        super().__init__(message)


class GenerationOptions(BaseModel):
    """Per-call tuning knobs.

    Attributes:
        thinking_budget: Overrides the task's configured thinking budget.
        item_number: Issue or PR number, used in branch-name examples.
    """

    thinking_budget: Optional[int] = None
    item_number: Optional[int] = None


def _extract_text(content: Any) -> str:
    """Flatten a chat message's content into plain text.

    Providers return either a string or a list of parts; thinking parts
    are skipped.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    raise AIResponseParseError(f"Unexpected response content type: {type(content).__name__}")


def _parse_llm_response(response_text: str) -> Dict[str, Any]:
    """Parse the model's text into a JSON object.

    Handles responses wrapped in markdown code fences.

    Raises:
        AIResponseParseError: If the text is not a JSON object.
    """
    text = response_text.strip()

    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]

    if text.endswith("```"):
        text = text[:-3]

    try:
        data = json.loads(text.strip())
    except json.JSONDecodeError as e:
        logger.warning(
            "Failed to parse model response as JSON",
            extra={"response_preview": response_text[:200], "error": str(e)},
        )
        raise AIResponseParseError(
            f"Invalid JSON response: {e}",
            response_preview=response_text[:200],
            cause=e,
        ) from e

    if not isinstance(data, dict):
        raise AIResponseParseError(
            f"Expected a JSON object, got {type(data).__name__}",
            response_preview=response_text[:200],
        )

    return data


def _validate_fix(raw_fix: Any) -> Optional[FixProposal]:
    """Return the fix if it is a complete Fix Proposal, else None."""
    if not isinstance(raw_fix, dict):
        return None
    try:
        return FixProposal.model_validate(raw_fix)
    except ValidationError as e:
        logger.warning(
            "Discarding structurally incomplete fix proposal",
            extra={"error_count": e.error_count()},
        )
        return None


def validate_result(task: AnalysisTask, data: Dict[str, Any]) -> AnalysisResult:
    """Validate parsed JSON into the task's result model.

    Enforces the actionability invariant: after this call, ``fix`` is
    set if and only if ``should_propose_fix`` is true.

    Raises:
        AIResponseParseError: If required fields are missing or invalid.
    """
    data = dict(data)
    data.pop("task", None)
    raw_fix = data.pop("fix", None)
    model_cls = RESULT_TYPES[task]

    try:
        result = model_cls.model_validate(data)
    except ValidationError as e:
        raise AIResponseParseError(
            f"Response does not match the {task.value} schema: {e}",
            cause=e,
        ) from e

    if not isinstance(result, ProposingResult):
        return result

    if not result.should_propose_fix:
        if raw_fix is not None:
            logger.debug("Dropping fix attached to a non-confident result")
        return result

    fix = _validate_fix(raw_fix)
    if fix is None:
        logger.warning(
            "Model signalled a fix but the fix object is missing or incomplete",
            extra={"task": task.value},
        )
        return result.model_copy(update={"should_propose_fix": False, "fix": None})

    return result.model_copy(update={"fix": fix})


class ProposalEngine:
    """Produces schema-valid analyses from context bundles.

    Attributes:
        settings: Service settings (default models, thinking budgets).
        model_factory: Builds a chat model for one request.

    Example:
        >>> engine = ProposalEngine(settings)
        >>> result = await engine.triage_issue(issue, api_key="...")
        >>> result.needs_info
        True
    """

    def __init__(
        self,
        settings: RepoPilotSettings,
        model_factory: Optional[ChatModelFactory] = None,
    ):
        self.settings = settings
        self.model_factory = model_factory or default_model_factory(settings)

    def default_model(self, task: AnalysisTask) -> str:
        return {
            AnalysisTask.ISSUE_ANALYSIS: self.settings.issue_model,
            AnalysisTask.PR_REVIEW: self.settings.review_model,
            AnalysisTask.CI_FAILURE: self.settings.ci_model,
            AnalysisTask.TRIAGE: self.settings.triage_model,
            AnalysisTask.DOCUMENTATION: self.settings.docs_model,
        }[task]

    def thinking_budget(self, task: AnalysisTask) -> int:
        return {
            AnalysisTask.ISSUE_ANALYSIS: self.settings.issue_thinking_budget,
            AnalysisTask.PR_REVIEW: self.settings.review_thinking_budget,
            AnalysisTask.CI_FAILURE: self.settings.ci_thinking_budget,
            AnalysisTask.TRIAGE: self.settings.triage_thinking_budget,
            AnalysisTask.DOCUMENTATION: self.settings.docs_thinking_budget,
        }[task]

    async def generate(
        self,
        task: AnalysisTask,
        bundle: ContextBundle,
        api_key: Optional[str],
        model_id: Optional[str] = None,
        options: Optional[GenerationOptions] = None,
    ) -> AnalysisResult:
        """Run one analysis task end to end.

        Args:
            task: Which analysis to run.
            bundle: Context assembled by the calling pipeline.
            api_key: The caller's AI API key.
            model_id: Model to use; defaults to the task's configured model.
            options: Optional per-call tuning.

        Returns:
            The validated result for the task.

        Raises:
            ConfigurationError: If the API key is missing (before any I/O).
            AIProviderError: If the model call fails.
            AIResponseParseError: If the output is not a valid result.
        """
        if not api_key or not api_key.strip():
            raise ConfigurationError("AI API key missing.")

        options = options or GenerationOptions()
        model_id = model_id or self.default_model(task)
        system_prompt, user_prompt = PROMPT_BUILDERS[task](bundle)

        request = ModelRequest(
            model_id=model_id,
            api_key=api_key,
            thinking_budget=(
                options.thinking_budget
                if options.thinking_budget is not None
                else self.thinking_budget(task)
            ),
            response_schema=schema_for(task, options.item_number),
        )

        logger.info(
            "Running analysis",
            extra={
                "task": task.value,
                "repository": bundle.repository.full_name,
                "model_id": model_id,
                "prompt_length": len(user_prompt),
            },
        )

        text = await self._invoke(request, system_prompt, user_prompt)

        if task == AnalysisTask.DOCUMENTATION:
            if not text.strip():
                raise AIResponseParseError("Empty documentation response")
            return DocumentationResult(content=text)

        result = validate_result(task, _parse_llm_response(text))

        if isinstance(result, TriageResult) and result.needs_info and not result.question.strip():
            result = result.model_copy(update={"question": DEFAULT_TRIAGE_QUESTION})

        logger.info(
            "Analysis completed",
            extra={
                "task": task.value,
                "repository": bundle.repository.full_name,
                "actionable": getattr(result, "is_actionable", False),
            },
        )

        return result

    async def _invoke(self, request: ModelRequest, system_prompt: str, user_prompt: str) -> str:
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]

        try:
            model = self.model_factory(request)
            response = await model.ainvoke(messages)
        except Exception as e:
            logger.error(
                "Model invocation failed",
                extra={
                    "model_id": request.model_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise AIProviderError(f"AI provider call failed: {e}", cause=e) from e

        return _extract_text(getattr(response, "content", response))

    # -------------------------------------------------------------------------
    # Task entry points
    # -------------------------------------------------------------------------

    async def analyze_issue(
        self,
        issue: Issue,
        repo: RepositoryRef,
        structure: str,
        api_key: Optional[str],
        feedback: Optional[str] = None,
        model: Optional[str] = None,
    ) -> IssueAnalysis:
        """Analyse an issue against the repository tree, optionally proposing a fix."""
        bundle = ContextBundle(
            repository=repo,
            issue=issue,
            structure=structure,
            feedback=feedback,
        )
        return await self.generate(
            AnalysisTask.ISSUE_ANALYSIS,
            bundle,
            api_key,
            model,
            GenerationOptions(item_number=issue.number),
        )

    async def review_pull_request(
        self,
        pr: PullRequest,
        repo: RepositoryRef,
        api_key: Optional[str],
        model: Optional[str] = None,
        diff: Optional[str] = None,
        files: Optional[List[FileContext]] = None,
    ) -> PRReview:
        """Review a pull request from its diff and changed-file contents."""
        bundle = ContextBundle(
            repository=repo,
            pull_request=pr,
            diff=diff,
            files=files or [],
        )
        return await self.generate(
            AnalysisTask.PR_REVIEW,
            bundle,
            api_key,
            model,
            GenerationOptions(item_number=pr.number),
        )

    async def analyze_workflow_failure(
        self,
        logs: str,
        repo: RepositoryRef,
        structure: str,
        api_key: Optional[str],
        model: Optional[str] = None,
    ) -> CIAnalysis:
        """Diagnose a failed job from its logs and the repository tree."""
        bundle = ContextBundle(repository=repo, logs=logs, structure=structure)
        return await self.generate(AnalysisTask.CI_FAILURE, bundle, api_key, model)

    async def triage_issue(
        self,
        issue: Issue,
        api_key: Optional[str],
        model: Optional[str] = None,
        repo: Optional[RepositoryRef] = None,
    ) -> TriageResult:
        """Decide whether an issue holds enough information to act on."""
        bundle = ContextBundle(
            repository=repo or RepositoryRef(owner="unknown", name="unknown"),
            issue=issue,
        )
        return await self.generate(AnalysisTask.TRIAGE, bundle, api_key, model)

    async def generate_documentation(
        self,
        repo: RepositoryRef,
        context: str,
        api_key: Optional[str],
        model: Optional[str] = None,
    ) -> DocumentationResult:
        """Generate markdown documentation from README-style context."""
        bundle = ContextBundle(repository=repo, readme=context)
        return await self.generate(AnalysisTask.DOCUMENTATION, bundle, api_key, model)
