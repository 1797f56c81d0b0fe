"""Chat model construction for the proposal engine.

Models are built per call from the caller's API key; nothing is cached
across users. Two backends are supported through LangChain:

- ``google``: the Gemini API via ChatGoogleGenerativeAI, with a thinking
  budget and a JSON response schema enforced by the provider.
- ``openai_compatible``: a self-hosted OpenAI-compatible endpoint (e.g.
  vLLM) via ChatOpenAI, with the schema bound as ``response_format``.

Provider-side retries are disabled; a failed call surfaces immediately.

Source:
- src/repopilot/config.py (LLMProvider, llm_url, llm_timeout_seconds)
"""

import logging
from typing import Any, Callable, Dict, Optional

from langchain_core.runnables import Runnable
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ConfigDict, Field

from src.repopilot.config import LLMProvider, RepoPilotSettings


logger = logging.getLogger(__name__)


class ModelRequest(BaseModel):
    """Everything needed to construct a chat model for one call."""

    model_config = ConfigDict(frozen=True)

    model_id: str = Field(..., min_length=1)
    api_key: str = Field(..., repr=False)
    thinking_budget: int = 0
    response_schema: Optional[Dict[str, Any]] = None


ChatModelFactory = Callable[[ModelRequest], Runnable]


def build_chat_model(request: ModelRequest, settings: RepoPilotSettings) -> Runnable:
    """Build the chat model for a request according to the configured provider.

    Args:
        request: Model id, key, thinking budget and optional schema.
        settings: Service settings selecting the provider.

    Returns:
        A runnable accepting a list of messages.
    """
    logger.debug(
        "Building chat model",
        extra={
            "provider": settings.llm_provider.value,
            "model_id": request.model_id,
            "thinking_budget": request.thinking_budget,
            "structured": request.response_schema is not None,
        },
    )

    if settings.llm_provider == LLMProvider.OPENAI_COMPATIBLE:
        return _build_openai_compatible(request, settings)
    return _build_google(request, settings)


def _build_google(request: ModelRequest, settings: RepoPilotSettings) -> Runnable:
    kwargs: Dict[str, Any] = {
        "model": request.model_id,
        "google_api_key": request.api_key,
        "timeout": settings.llm_timeout_seconds,
        "max_retries": 0,
        "thinking_budget": request.thinking_budget,
    }
    if settings.llm_temperature is not None:
        kwargs["temperature"] = settings.llm_temperature
    if request.response_schema is not None:
        kwargs["response_mime_type"] = "application/json"
        kwargs["response_schema"] = request.response_schema
    return ChatGoogleGenerativeAI(**kwargs)


def _build_openai_compatible(
    request: ModelRequest,
    settings: RepoPilotSettings,
) -> Runnable:
    kwargs: Dict[str, Any] = {
        "base_url": settings.llm_url,
        "model": request.model_id,
        "api_key": request.api_key,
        "timeout": settings.llm_timeout_seconds,
        "max_retries": 0,
    }
    if settings.llm_temperature is not None:
        kwargs["temperature"] = settings.llm_temperature
    model = ChatOpenAI(**kwargs)

    if request.response_schema is None:
        return model
    return model.bind(
        response_format={
            "type": "json_schema",
            "json_schema": {
                "name": "analysis_result",
                "schema": request.response_schema,
                "strict": True,
            },
        }
    )


def default_model_factory(settings: RepoPilotSettings) -> ChatModelFactory:
    """Bind settings into a factory usable by the ProposalEngine."""

    def factory(request: ModelRequest) -> Runnable:
        return build_chat_model(request, settings)

    return factory
