"""Agent options and their layered merge.

Options come from up to four layers, lowest priority first::

    AgentOptions()  <  config file [default_options]  <  agent # Options  <  Before-All override

Each layer is merged over the previous one with :meth:`AgentOptions.merge`.
A ``None`` field never overrides a present value; alias tables merge
key-wise with the override winning.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_ai.settings import ModelSettings

DEFAULT_CONCURRENCY = 1


class AgentOptions(BaseModel):
    """Model selection and runtime options for an agent run."""

    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())

    model: str | None = Field(default=None, description="Raw model name or alias, e.g. 'openai:gpt-4o-mini' or 'small'")
    model_aliases: dict[str, str] | None = None
    temperature: float | None = None
    input_concurrency: int | None = Field(default=None, ge=1)

    # -- Construction ----------------------------------------------------------

    @classmethod
    def from_value(cls, value: Any) -> AgentOptions:
        """Validate a plain mapping (TOML table or script return value).

        ``None`` yields the empty layer.  Raises ``pydantic.ValidationError``
        on unknown keys or wrong types; callers translate it to their own
        domain error.
        """
        if value is None:
            return cls()
        return cls.model_validate(value)

    def merge(self, override: AgentOptions | None) -> AgentOptions:
        """Return a new options value with *override* layered on top of self."""
        if override is None:
            return self

        aliases = self.model_aliases
        if override.model_aliases is not None:
            aliases = {**(aliases or {}), **override.model_aliases}

        return AgentOptions(
            model=_first(override.model, self.model),
            model_aliases=aliases,
            temperature=_first(override.temperature, self.temperature),
            input_concurrency=_first(override.input_concurrency, self.input_concurrency),
        )

    # -- Resolution ------------------------------------------------------------

    def resolve_model(self) -> str | None:
        """Return the model name with aliases applied (raw name when no alias matches)."""
        if self.model is None:
            return None
        if self.model_aliases:
            return self.model_aliases.get(self.model, self.model)
        return self.model

    @property
    def effective_concurrency(self) -> int:
        return self.input_concurrency if self.input_concurrency is not None else DEFAULT_CONCURRENCY

    def to_model_settings(self) -> ModelSettings:
        """Map to pydantic-ai ``ModelSettings``; unset fields are omitted."""
        settings = ModelSettings()
        if self.temperature is not None:
            settings["temperature"] = self.temperature
        return settings


def _first[T](override: T | None, default: T | None) -> T | None:
    """Return the override if not None, otherwise the default."""
    return override if override is not None else default
