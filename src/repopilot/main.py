"""FastAPI application entry point for RepoPilot.

Exposes the analysis pipelines, fix publication, repository listings,
stored results and the batch triage endpoints over HTTP.

Per-user routes identify the caller by the ``X-User-Id`` header and read
their GitHub token, AI API key and model choice from the settings store
once per request. The batch routes (triage pass, weekly scan) are meant
for schedulers and take their credentials in the request body.

Error mapping:
- ConfigurationError: 400
- RemoteHostError, AIProviderError, AIResponseParseError: 502
- FixApplicationError: 502 with the failing step
- No stored result: 404
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry
from pydantic import BaseModel, ConfigDict, Field

from .ai.engine import AIProviderError, AIResponseParseError, ProposalEngine
from .ai.llm import ChatModelFactory
from .ai.models import FixProposal
from .config import RepoPilotSettings, get_settings
from .events import EventEmitter, create_event_emitter, generate_metrics_output
from .github.client import GitHubClient, RemoteHostError
from .github.fix_publisher import FixApplicationError
from .pipelines.analysis import AnalysisPipelines, GitHubClientFactory
from .pipelines.store import InMemoryResultStore, ResultStore
from .pipelines.triage import TriageManager
from .session import ConfigurationError, InMemorySettingsStore, SettingsStore, resolve_session

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: RepoPilotSettings) -> None:
    """Log configuration values on startup.

    The service settings hold no per-user secrets; the LLM endpoint is
    still redacted since self-hosted URLs may embed credentials.
    """
    logger.info("RepoPilot configuration:")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub Timeout Seconds: {settings.github_timeout_seconds}")
    logger.info(f"  LLM Provider: {settings.llm_provider.value}")
    logger.info(f"  LLM URL: {_redact_secret(settings.llm_url, visible_chars=12)}")
    logger.info(f"  LLM Timeout Seconds: {settings.llm_timeout_seconds}")
    logger.info(f"  Issue Model: {settings.issue_model}")
    logger.info(f"  Review Model: {settings.review_model}")
    logger.info(f"  CI Model: {settings.ci_model}")
    logger.info(f"  Docs Model: {settings.docs_model}")
    logger.info(f"  Triage Model: {settings.triage_model}")
    logger.info(f"  Needs-Info Label: {settings.needs_info_label}")
    logger.info(f"  Triage-Complete Label: {settings.triage_complete_label}")
    logger.info(f"  Event Sinks: {[sink.value for sink in settings.event_sinks]}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


class RepoPilotServices:
    """Long-lived collaborators shared by all requests.

    Nothing here holds per-user credentials; GitHub clients are built per
    request from the caller's token.
    """

    def __init__(
        self,
        settings: RepoPilotSettings,
        settings_store: SettingsStore,
        result_store: ResultStore,
        engine: ProposalEngine,
        emitter: EventEmitter,
        client_factory: Optional[GitHubClientFactory] = None,
        metrics_registry: Optional[CollectorRegistry] = None,
    ):
        self.settings = settings
        self.settings_store = settings_store
        self.result_store = result_store
        self.engine = engine
        self.emitter = emitter
        self.metrics_registry = metrics_registry
        self.pipelines = AnalysisPipelines(
            settings,
            engine,
            result_store,
            emitter=emitter,
            client_factory=client_factory,
        )

    def github_client(self, token: str) -> GitHubClient:
        return self.pipelines.client_factory(token)

    def triage_manager(self, client: GitHubClient) -> TriageManager:
        return TriageManager(
            client,
            self.engine,
            needs_info_label=self.settings.needs_info_label,
            triage_complete_label=self.settings.triage_complete_label,
            emitter=self.emitter,
            page_size=self.settings.issues_page_size,
        )


def build_services(
    settings: RepoPilotSettings,
    settings_store: Optional[SettingsStore] = None,
    result_store: Optional[ResultStore] = None,
    model_factory: Optional[ChatModelFactory] = None,
    client_factory: Optional[GitHubClientFactory] = None,
    metrics_registry: Optional[CollectorRegistry] = None,
) -> RepoPilotServices:
    """Wire the engine, stores and event sinks into a services container."""
    emitter = create_event_emitter(settings.event_sinks, metrics_registry=metrics_registry)
    return RepoPilotServices(
        settings=settings,
        settings_store=settings_store or InMemorySettingsStore(),
        result_store=result_store or InMemoryResultStore(),
        engine=ProposalEngine(settings, model_factory=model_factory),
        emitter=emitter,
        client_factory=client_factory,
        metrics_registry=metrics_registry,
    )


# -----------------------------------------------------------------------------
# Request bodies
# -----------------------------------------------------------------------------


class AnalyzeIssueRequest(BaseModel):
    feedback: Optional[str] = None


class TriageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    owner: Optional[str] = None
    repo: Optional[str] = None
    token: Optional[str] = None
    ai_key: Optional[str] = Field(default=None, alias="aiKey")
    model: Optional[str] = None


class WeeklyScanRequest(BaseModel):
    owner: Optional[str] = None
    repo: Optional[str] = None
    token: Optional[str] = None


def _error(http_status: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=http_status, content={"error": message, **extra})


def _missing(**params) -> Optional[JSONResponse]:
    """Return a 400 response listing the required parameters if any is blank."""
    if all(params.values()):
        return None
    names = ", ".join(params)
    return _error(400, f"Missing required parameters: {names}")


def create_app(
    settings: Optional[RepoPilotSettings] = None,
    services_factory: Optional[Callable[[RepoPilotSettings], RepoPilotServices]] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment at startup
            when omitted.
        services_factory: Builds the services container; defaults to
            build_services. Tests pass a factory wiring fakes.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("RepoPilot starting up...")

        cfg = settings or get_settings()
        _log_configuration(cfg)
        app.state.services = (services_factory or build_services)(cfg)

        logger.info("RepoPilot started successfully")

        yield

        logger.info("RepoPilot shutting down...")
        await app.state.services.emitter.close()
        logger.info("RepoPilot shutdown complete")

    app = FastAPI(
        title="RepoPilot",
        description="AI-assisted issue analysis, PR review, CI diagnosis and triage for GitHub repositories",
        version="1.0.0",
        lifespan=lifespan,
    )

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return _error(400, exc.message)

    @app.exception_handler(RemoteHostError)
    async def remote_host_error_handler(request: Request, exc: RemoteHostError):
        return _error(502, exc.message, status_code=exc.status_code)

    @app.exception_handler(AIProviderError)
    async def ai_provider_error_handler(request: Request, exc: AIProviderError):
        return _error(502, exc.message)

    @app.exception_handler(AIResponseParseError)
    async def ai_response_error_handler(request: Request, exc: AIResponseParseError):
        return _error(502, exc.message)

    @app.exception_handler(FixApplicationError)
    async def fix_application_error_handler(request: Request, exc: FixApplicationError):
        return _error(502, exc.message, step=exc.step)

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health():
        """Liveness probe endpoint."""
        return {"status": "healthy"}

    @app.get("/metrics")
    async def metrics(request: Request):
        """Prometheus metrics endpoint."""
        registry = request.app.state.services.metrics_registry
        return Response(
            content=generate_metrics_output(registry),
            media_type=CONTENT_TYPE_LATEST,
        )

    # -------------------------------------------------------------------------
    # Per-user operations
    # -------------------------------------------------------------------------

    async def _session(request: Request, user_id: Optional[str]):
        return await resolve_session(request.app.state.services.settings_store, user_id)

    @app.get("/api/repos/{owner}/{repo}/issues")
    async def list_issues(
        owner: str,
        repo: str,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ):
        session = await _session(request, x_user_id)
        issues = await request.app.state.services.pipelines.list_open_issues(session, owner, repo)
        return [issue.model_dump(mode="json") for issue in issues]

    @app.get("/api/repos/{owner}/{repo}/pulls")
    async def list_pull_requests(
        owner: str,
        repo: str,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ):
        session = await _session(request, x_user_id)
        pulls = await request.app.state.services.pipelines.list_open_pull_requests(
            session, owner, repo
        )
        return [pr.model_dump(mode="json") for pr in pulls]

    @app.get("/api/repos/{owner}/{repo}/runs")
    async def list_workflow_runs(
        owner: str,
        repo: str,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ):
        session = await _session(request, x_user_id)
        runs = await request.app.state.services.pipelines.list_workflow_runs(session, owner, repo)
        return [run.model_dump(mode="json") for run in runs]

    @app.get("/api/repos/{owner}/{repo}/issues/{number}/analysis")
    async def get_issue_analysis(owner: str, repo: str, number: int, request: Request):
        result = await request.app.state.services.pipelines.stored_issue_analysis(
            owner, repo, number
        )
        if result is None:
            return _error(404, f"No analysis stored for issue #{number}")
        return result.to_wire()

    @app.get("/api/repos/{owner}/{repo}/pulls/{number}/review")
    async def get_pr_review(owner: str, repo: str, number: int, request: Request):
        result = await request.app.state.services.pipelines.stored_pr_review(owner, repo, number)
        if result is None:
            return _error(404, f"No review stored for pull request #{number}")
        return result.to_wire()

    @app.get("/api/repos/{owner}/{repo}/runs/{run_id}/analysis")
    async def get_ci_analysis(owner: str, repo: str, run_id: int, request: Request):
        result = await request.app.state.services.pipelines.stored_ci_analysis(owner, repo, run_id)
        if result is None:
            return _error(404, f"No analysis stored for workflow run {run_id}")
        return result.to_wire()

    @app.get("/api/repos/{owner}/{repo}/docs")
    async def get_documentation(owner: str, repo: str, request: Request):
        result = await request.app.state.services.pipelines.stored_documentation(owner, repo)
        if result is None:
            return _error(404, f"No documentation stored for {owner}/{repo}")
        return result.to_wire()

    @app.post("/api/repos/{owner}/{repo}/issues/{number}/analyze")
    async def analyze_issue(
        owner: str,
        repo: str,
        number: int,
        request: Request,
        body: Optional[AnalyzeIssueRequest] = None,
        x_user_id: Optional[str] = Header(default=None),
    ):
        session = await _session(request, x_user_id)
        result = await request.app.state.services.pipelines.analyze_issue(
            session, owner, repo, number, feedback=body.feedback if body else None
        )
        return result.to_wire()

    @app.post("/api/repos/{owner}/{repo}/pulls/{number}/review")
    async def review_pull_request(
        owner: str,
        repo: str,
        number: int,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ):
        session = await _session(request, x_user_id)
        outcome = await request.app.state.services.pipelines.review_pull_request(
            session, owner, repo, number
        )
        return {
            "review": outcome.review.to_wire(),
            "diffContent": outcome.diff,
            "fileContents": [
                {"filePath": f.file_path, "content": f.content} for f in outcome.files
            ],
        }

    @app.post("/api/repos/{owner}/{repo}/runs/{run_id}/analyze")
    async def analyze_workflow_run(
        owner: str,
        repo: str,
        run_id: int,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ):
        session = await _session(request, x_user_id)
        result = await request.app.state.services.pipelines.analyze_workflow_run(
            session, owner, repo, run_id
        )
        return result.to_wire()

    @app.post("/api/repos/{owner}/{repo}/docs")
    async def generate_documentation(
        owner: str,
        repo: str,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ):
        session = await _session(request, x_user_id)
        result = await request.app.state.services.pipelines.generate_documentation(
            session, owner, repo
        )
        return result.to_wire()

    @app.post("/api/repos/{owner}/{repo}/fixes")
    async def apply_fix(
        owner: str,
        repo: str,
        proposal: FixProposal,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ):
        session = await _session(request, x_user_id)
        result = await request.app.state.services.pipelines.apply_fix(
            session, owner, repo, proposal
        )
        return {
            "success": result.success,
            "prUrl": result.pr_url,
            "prNumber": result.pr_number,
            "branchName": result.branch_name,
            "commitSha": result.commit_sha,
        }

    # -------------------------------------------------------------------------
    # Batch operations
    # -------------------------------------------------------------------------

    @app.post("/api/triage")
    async def triage(body: TriageRequest, request: Request):
        """Triage all untriaged open issues of a repository."""
        missing = _missing(owner=body.owner, repo=body.repo, token=body.token, aiKey=body.ai_key)
        if missing is not None:
            return missing

        services: RepoPilotServices = request.app.state.services
        client = services.github_client(body.token)
        try:
            report = await services.triage_manager(client).run_triage_pass(
                body.owner, body.repo, body.ai_key, model=body.model
            )
        finally:
            await client.close()
        return report.model_dump(mode="json", exclude_none=True)

    @app.post("/api/cron/weekly-scan")
    async def weekly_scan(body: WeeklyScanRequest, request: Request):
        """Re-check issues waiting for information from their author."""
        missing = _missing(owner=body.owner, repo=body.repo, token=body.token)
        if missing is not None:
            return missing

        services: RepoPilotServices = request.app.state.services
        client = services.github_client(body.token)
        try:
            report = await services.triage_manager(client).run_weekly_scan(body.owner, body.repo)
        finally:
            await client.close()
        return report.model_dump(mode="json", exclude_none=True)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.repopilot.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
