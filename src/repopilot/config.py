"""RepoPilot configuration using pydantic-settings.

This module defines the RepoPilotSettings class that reads configuration
from environment variables with the REPOPILOT_ prefix. Per-user secrets
(GitHub token, AI API key) are NOT part of this configuration; they are
resolved per request through the settings store (see session.py).
"""

from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.repopilot.events.emitter import EventSinkType


class LLMProvider(str, Enum):
    """Backend used to reach the generative model.

    Attributes:
        GOOGLE: The Gemini API via langchain-google-genai.
        OPENAI_COMPATIBLE: A self-hosted OpenAI-compatible endpoint
            (e.g. vLLM) via langchain-openai.
    """

    GOOGLE = "google"
    OPENAI_COMPATIBLE = "openai_compatible"


class RepoPilotSettings(BaseSettings):
    """RepoPilot service configuration from environment variables.

    All environment variables are prefixed with REPOPILOT_
    (e.g., REPOPILOT_GITHUB_BASE_URL).
    """

    model_config = SettingsConfigDict(
        env_prefix="REPOPILOT_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # Request timeout for GitHub API calls
    github_timeout_seconds: float = 30.0

    # Page sizes used by the listing endpoints
    issues_page_size: int = 20
    workflow_runs_page_size: int = 10

    # -------------------------------------------------------------------------
    # LLM Configuration
    # -------------------------------------------------------------------------
    llm_provider: LLMProvider = LLMProvider.GOOGLE

    # Only used by the openai_compatible provider
    llm_url: Optional[str] = None

    llm_timeout_seconds: float = 120.0

    # None leaves the provider default in place
    llm_temperature: Optional[float] = None

    # Default model per task, used when the user has not selected one
    issue_model: str = "gemini-3-flash-preview"
    triage_model: str = "gemini-3-flash-preview"
    review_model: str = "gemini-3-pro-preview"
    ci_model: str = "gemini-3-pro-preview"
    docs_model: str = "gemini-3-pro-preview"

    # Thinking budget (tokens) per task
    issue_thinking_budget: int = 4000
    review_thinking_budget: int = 8000
    ci_thinking_budget: int = 8000
    docs_thinking_budget: int = 5000
    triage_thinking_budget: int = 2000

    # -------------------------------------------------------------------------
    # Triage Configuration
    # -------------------------------------------------------------------------
    needs_info_label: str = "needs-more-info"
    triage_complete_label: str = "triage-complete"

    # -------------------------------------------------------------------------
    # Event Configuration
    # -------------------------------------------------------------------------
    # JSON list in the environment, e.g. REPOPILOT_EVENT_SINKS='["logging"]'
    event_sinks: List[EventSinkType] = Field(
        default_factory=lambda: [EventSinkType.LOGGING, EventSinkType.METRICS]
    )

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_base_url")
    @classmethod
    def validate_github_base_url(cls, v: str) -> str:
        """Validate that the GitHub base URL is an http(s) URL."""
        if not v or not v.strip():
            raise ValueError("github_base_url cannot be empty")
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("llm_url")
    @classmethod
    def validate_llm_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the LLM URL, when given, is an http(s) URL."""
        if v is None:
            return v
        if not v.strip():
            raise ValueError("llm_url cannot be empty")
        if not v.startswith(("http://", "https://")):
            raise ValueError("llm_url must start with http:// or https://")
        return v

    @field_validator(
        "issue_thinking_budget",
        "review_thinking_budget",
        "ci_thinking_budget",
        "docs_thinking_budget",
        "triage_thinking_budget",
    )
    @classmethod
    def validate_thinking_budget(cls, v: int) -> int:
        """Validate that thinking budgets are not negative."""
        if v < 0:
            raise ValueError("thinking budget cannot be negative")
        return v

    @field_validator("issues_page_size", "workflow_runs_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        """Validate page sizes against GitHub's per_page bounds."""
        if not 1 <= v <= 100:
            raise ValueError("page size must be between 1 and 100")
        return v

    @field_validator("needs_info_label", "triage_complete_label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        """Validate that label names are not empty."""
        if not v or not v.strip():
            raise ValueError("label name cannot be empty")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @model_validator(mode="after")
    def validate_provider_endpoint(self) -> "RepoPilotSettings":
        """The openai_compatible provider needs an endpoint URL."""
        if self.llm_provider == LLMProvider.OPENAI_COMPATIBLE and not self.llm_url:
            raise ValueError("llm_url is required for the openai_compatible provider")
        return self


def get_settings() -> RepoPilotSettings:
    """Create and return a RepoPilotSettings instance.

    Returns:
        RepoPilotSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If fields are invalid.
    """
    return RepoPilotSettings()
