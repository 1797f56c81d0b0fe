"""Per-request session resolution.

A Session is the narrow, read-only view of the current user's secrets and
model choice. It is resolved once per request from the settings store and
threaded explicitly through every pipeline call.

Source:
- src/repopilot/config.py (RepoPilotSettings)
"""

import logging
from typing import Dict, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field


logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when a required secret or setting is missing.

    Always raised before any network I/O takes place.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UserSettings(BaseModel):
    """Per-user settings as kept by the external settings store."""

    github_token: Optional[str] = None
    ai_api_key: Optional[str] = None
    ai_model_id: Optional[str] = None


class Session(BaseModel):
    """Read-only credentials and model choice for one request.

    Attributes:
        github_token: Token used to authenticate against the GitHub API.
        ai_api_key: API key for the generative model provider.
        ai_model_id: Model selected by the user; None means the per-task default.
    """

    model_config = ConfigDict(frozen=True)

    github_token: Optional[str] = Field(default=None, repr=False)
    ai_api_key: Optional[str] = Field(default=None, repr=False)
    ai_model_id: Optional[str] = None

    def require_github_token(self) -> str:
        """Return the GitHub token or raise ConfigurationError."""
        if not self.github_token or not self.github_token.strip():
            raise ConfigurationError("GitHub token missing.")
        return self.github_token

    def require_ai_api_key(self) -> str:
        """Return the AI API key or raise ConfigurationError."""
        if not self.ai_api_key or not self.ai_api_key.strip():
            raise ConfigurationError("AI API key missing.")
        return self.ai_api_key


class SettingsStore(Protocol):
    """Protocol for the external per-user settings store."""

    async def get(self, user_id: str) -> Optional[UserSettings]:
        ...


class InMemorySettingsStore:
    """Dictionary-backed settings store for local development and tests."""

    def __init__(self, initial: Optional[Dict[str, UserSettings]] = None):
        self._settings: Dict[str, UserSettings] = dict(initial or {})

    async def get(self, user_id: str) -> Optional[UserSettings]:
        return self._settings.get(user_id)


async def resolve_session(store: SettingsStore, user_id: Optional[str]) -> Session:
    """Read the user's settings once and build a Session.

    Args:
        store: The settings store to read from.
        user_id: Identifier of the requesting user.

    Returns:
        Session for the user. Secrets may still be absent; pipelines call
        the require_* methods for what they need.

    Raises:
        ConfigurationError: If no user id was supplied or the user has no
            stored settings.
    """
    if not user_id:
        raise ConfigurationError("User id missing.")

    user_settings = await store.get(user_id)
    if user_settings is None:
        logger.warning("No settings stored for user", extra={"user_id": user_id})
        raise ConfigurationError("No settings found for user.")

    return Session(
        github_token=user_settings.github_token,
        ai_api_key=user_settings.ai_api_key,
        ai_model_id=user_settings.ai_model_id,
    )
