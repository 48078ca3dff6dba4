"""Data models for the agent runtime."""

from agentloop.agent_runtime.models.agent import Agent, PromptPart
from agentloop.agent_runtime.models.enums import DryMode, EventType, PartKind, Stage
from agentloop.agent_runtime.models.events import RunEvent
from agentloop.agent_runtime.models.options import DEFAULT_CONCURRENCY, AgentOptions
from agentloop.agent_runtime.models.run import (
    AiResponse,
    Completed,
    FileMeta,
    RunCommandResponse,
    RunOptions,
    Skipped,
    StageResult,
    Usage,
    stage_result_value,
)

__all__ = [
    "DEFAULT_CONCURRENCY",
    # Agent
    "Agent",
    "AgentOptions",
    # Run
    "AiResponse",
    "Completed",
    # Enums
    "DryMode",
    "EventType",
    "FileMeta",
    "PartKind",
    "PromptPart",
    "RunCommandResponse",
    # Events
    "RunEvent",
    "RunOptions",
    "Skipped",
    "Stage",
    "StageResult",
    "Usage",
    "stage_result_value",
]
