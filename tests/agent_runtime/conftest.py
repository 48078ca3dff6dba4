"""Fakes and builders shared by the agent-runtime tests.

No network and no API keys: the chat capability is a scripted fake and
events are recorded in memory.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from agentloop.agent_runtime.execution.services import RunServices
from agentloop.agent_runtime.models.agent import Agent, PromptPart
from agentloop.agent_runtime.models.enums import EventType, PartKind
from agentloop.agent_runtime.models.events import RunEvent
from agentloop.agent_runtime.models.options import AgentOptions
from agentloop.agent_runtime.models.run import AiResponse, Usage


class RecordingPublisher:
    """Publisher that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[RunEvent] = []

    def publish(self, event: RunEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[RunEvent]:
        return [e for e in self.events if e.event_type == event_type]


class FakeChatClient:
    """Echo chat client.

    Replies ``"output for: <last part>"`` unless *reply* is given.  *delays*
    maps the last part's content to a sleep in seconds, which lets tests
    force a completion order different from the input order.
    """

    def __init__(
        self,
        reply: Callable[[str], str] | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.reply = reply or (lambda text: f"output for: {text}")
        self.delays = delays or {}
        self.calls: list[tuple[str, list[PromptPart], AgentOptions]] = []
        self.active = 0
        self.max_active = 0

    async def chat(self, model: str, messages: Sequence[PromptPart], options: AgentOptions) -> AiResponse:
        self.calls.append((model, list(messages), options))
        text = messages[-1].content
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(text, 0))
        finally:
            self.active -= 1
        return AiResponse(content=self.reply(text), model_name=model, usage=Usage(input_tokens=3, output_tokens=5, total_tokens=8))


def _make_agent(
    *,
    instruction: str | None = "{{ input }}",
    parts: Sequence[PromptPart] | None = None,
    before_all: str | None = None,
    data: str | None = None,
    output: str | None = None,
    after_all: str | None = None,
    **options: Any,
) -> Agent:
    if parts is None:
        parts = [PromptPart(kind=PartKind.INSTRUCTION, content=instruction)] if instruction is not None else []
    return Agent(
        name="test-agent",
        file_path="agents/test-agent.md",
        prompt_parts=tuple(parts),
        before_all_script=before_all,
        data_script=data,
        output_script=output,
        after_all_script=after_all,
        options=AgentOptions(**{"model": "test-model", **options}),
    )


@pytest.fixture
def make_agent() -> Callable[..., Agent]:
    """Build a test Agent; keyword options go into its AgentOptions."""
    return _make_agent


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def chat() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def services(chat: FakeChatClient, publisher: RecordingPublisher) -> RunServices:
    return RunServices(chat_client=chat, publisher=publisher)
