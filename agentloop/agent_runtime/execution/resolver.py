"""Options resolver -- merges the option layers and builds the run's Agent.

Resolution order (lowest priority first):

1. ``AgentOptions()`` -- nothing set; concurrency falls back to 1.
2. ``[default_options]`` of the workspace config file (``.agentloop/config.toml``).
3. The agent file's ``# Options`` TOML block.
4. The ``options`` of a Before-All ``BeforeAllResponse`` (applied by the
   coordinator, once, before any input task is spawned).

Each step is :meth:`AgentOptions.merge`; ``None`` never overrides a value.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from agentloop.agent_runtime.agent_doc import AgentDoc, read_agent_doc
from agentloop.agent_runtime.errors import ConfigError, ProtocolError
from agentloop.agent_runtime.models.agent import Agent
from agentloop.agent_runtime.models.options import AgentOptions

# ---------------------------------------------------------------------------
# Option layers
# ---------------------------------------------------------------------------


def options_from_value(value: Any, source: str) -> AgentOptions:
    """Validate an options mapping read from *source*.  Raises ``ConfigError``."""
    try:
        return AgentOptions.from_value(value)
    except ValidationError as err:
        raise ConfigError(f"Invalid options in {source}: {err}") from err


def options_from_toml(text: str, source: str) -> AgentOptions:
    """Parse a flat options TOML document (the agent ``# Options`` block)."""
    try:
        value = tomllib.loads(text)
    except tomllib.TOMLDecodeError as err:
        raise ConfigError(f"Invalid TOML in {source}: {err}") from err
    return options_from_value(value, source)


def load_config_options(config_path: str | Path) -> AgentOptions:
    """Read the ``[default_options]`` table of the config file.

    A missing file, or a file without the table, is the empty layer.
    """
    path = Path(config_path)
    if not path.is_file():
        logger.debug("No config file at {}, using empty default options", path)
        return AgentOptions()

    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as err:
        raise ConfigError(f"Cannot load config file {path}: {err}") from err

    if "default-options" in raw:
        raise ConfigError(f"Config {path}: [default-options] is invalid, use [default_options] (with _ and not -)")

    return options_from_value(raw.get("default_options"), str(path))


def resolve_agent_options(*layers: AgentOptions | None) -> AgentOptions:
    """Merge option layers left to right (later layers win)."""
    resolved = AgentOptions()
    for layer in layers:
        resolved = resolved.merge(layer)
    return resolved


def apply_options_override(agent: Agent, value: Any) -> Agent:
    """Apply a Before-All ``options`` payload, returning a new Agent.

    Raises ``ProtocolError`` if the payload is not a valid options mapping.
    """
    if value is None:
        return agent
    try:
        override = AgentOptions.from_value(value)
    except ValidationError as err:
        raise ProtocolError(f"before_all_response(data) 'options' is invalid: {err}") from err
    return agent.with_options(override)


# ---------------------------------------------------------------------------
# Agent construction
# ---------------------------------------------------------------------------


def build_agent(doc: AgentDoc, base_options: AgentOptions | None = None) -> Agent:
    """Build the immutable Agent from a parsed document and the lower layers."""
    doc_options = options_from_toml(doc.options_toml, f"{doc.path} # Options") if doc.options_toml else None

    return Agent(
        name=doc.name,
        file_path=doc.path,
        prompt_parts=tuple(doc.prompt_parts),
        before_all_script=doc.script("before_all"),
        data_script=doc.script("data"),
        output_script=doc.script("output"),
        after_all_script=doc.script("after_all"),
        options=resolve_agent_options(base_options, doc_options),
    )


def load_agent(agent_path: str | Path, *, config_path: str | Path | None = None) -> Agent:
    """Load an agent file, layering its options over the config file's defaults."""
    base_options = load_config_options(config_path) if config_path is not None else None
    agent = build_agent(read_agent_doc(agent_path), base_options)
    logger.debug(
        "Loaded agent {} ({} prompt parts, model={})",
        agent.name,
        len(agent.prompt_parts),
        agent.model_name,
    )
    return agent
