"""Collaborator bundle handed to the coordinator and the stage executor."""

from __future__ import annotations

from dataclasses import dataclass, field

from agentloop.agent_runtime.execution.chat import ChatClient, PydanticAIChatClient
from agentloop.agent_runtime.execution.script import PythonScriptEngine, ScriptEngine
from agentloop.agent_runtime.hub import NullPublisher, Publisher


@dataclass(frozen=True)
class RunServices:
    """Script, chat and publish capabilities for one run.

    Shared read-only by every input task.
    """

    script_engine: ScriptEngine = field(default_factory=PythonScriptEngine)
    chat_client: ChatClient = field(default_factory=PydanticAIChatClient)
    publisher: Publisher = field(default_factory=NullPublisher)
