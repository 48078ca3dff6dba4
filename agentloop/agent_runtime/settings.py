"""Process configuration loaded from AGENTLOOP_* environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_FILE = ".agentloop/config.toml"


class AgentLoopSettings(BaseSettings):
    """agentloop settings.

    All fields are read from environment variables with the ``AGENTLOOP_``
    prefix.  For example, ``AGENTLOOP_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Provider API keys (OPENAI_API_KEY, ANTHROPIC_API_KEY, ...) are **not**
    managed here -- pydantic-ai reads them from the environment itself.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENTLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Workspace -------------------------------------------------------------
    workspace_dir: Path = Path()
    """Root of the workspace; relative agent and input paths resolve from here."""

    config_file: Path = Path(DEFAULT_CONFIG_FILE)
    """Options file holding a ``[default_options]`` table.

    Relative paths are resolved against ``workspace_dir``.  A missing file is
    an empty options layer, not an error.
    """

    # -- Events ----------------------------------------------------------------
    event_buffer_size: int = Field(default=100, ge=1)
    """Capacity of the run-event queue.  Events beyond it are dropped."""

    # -- Helpers ---------------------------------------------------------------

    def resolve_workspace_dir(self) -> Path:
        return self.workspace_dir.expanduser().resolve()

    def resolve_config_file(self) -> Path:
        path = self.config_file.expanduser()
        if path.is_absolute():
            return path
        return self.resolve_workspace_dir() / path


@lru_cache(maxsize=1)
def get_settings() -> AgentLoopSettings:
    """Return a cached settings instance.

    Call ``get_settings.cache_clear()`` in tests to force a re-read after
    overriding env vars.
    """
    return AgentLoopSettings()
