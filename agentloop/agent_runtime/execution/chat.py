"""AI call adapter -- maps rendered prompt parts to a pydantic-ai model request.

This module is the bridge between agentloop's prompt model and pydantic-ai.
It translates:

- ``PromptPart`` list -> pydantic-ai ``ModelMessage`` list
- ``AgentOptions``    -> pydantic-ai ``ModelSettings``
- ``ModelResponse``   -> ``AiResponse`` (text content + token usage)

Each input issues exactly one direct model request; there is no agent loop,
no tool calling and no retry.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import httpx
from loguru import logger
from pydantic_ai.direct import model_request
from pydantic_ai.exceptions import AgentRunError, UserError
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)

from agentloop.agent_runtime.errors import ChatError
from agentloop.agent_runtime.models.enums import PartKind
from agentloop.agent_runtime.models.run import AiResponse, Usage

if TYPE_CHECKING:
    from pydantic_ai.models import Model

    from agentloop.agent_runtime.models.agent import PromptPart
    from agentloop.agent_runtime.models.options import AgentOptions

_CHAT_FAILURES = (AgentRunError, UserError, httpx.HTTPError, ImportError, ValueError)


@runtime_checkable
class ChatClient(Protocol):
    """Async AI call capability."""

    async def chat(self, model: str, messages: Sequence[PromptPart], options: AgentOptions) -> AiResponse:
        """Send *messages* to *model*.  Raises ``ChatError`` on failure."""
        ...


# ---------------------------------------------------------------------------
# Message mapping
# ---------------------------------------------------------------------------


def build_messages(parts: Sequence[PromptPart]) -> list[ModelMessage]:
    """Map prompt parts to pydantic-ai messages, preserving order.

    Consecutive system/instruction parts share one ``ModelRequest``; an
    assistant part closes the pending request and becomes a ``ModelResponse``.
    """
    messages: list[ModelMessage] = []
    pending: list[ModelRequestPart] = []

    for part in parts:
        match part.kind:
            case PartKind.SYSTEM:
                pending.append(SystemPromptPart(content=part.content))
            case PartKind.INSTRUCTION:
                pending.append(UserPromptPart(content=part.content))
            case PartKind.ASSISTANT:
                if pending:
                    messages.append(ModelRequest(parts=pending))
                    pending = []
                messages.append(ModelResponse(parts=[TextPart(content=part.content)]))

    if pending:
        messages.append(ModelRequest(parts=pending))
    return messages


def to_ai_response(response: ModelResponse, model: str) -> AiResponse:
    """Extract text content and token usage from a model response."""
    texts = [p.content for p in response.parts if isinstance(p, TextPart)]
    usage = response.usage
    return AiResponse(
        content="".join(texts) if texts else None,
        model_name=response.model_name or model,
        usage=Usage(
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.input_tokens + usage.output_tokens,
        ),
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class PydanticAIChatClient:
    """Chat capability backed by ``pydantic_ai.direct.model_request``.

    Model names are provider-qualified pydantic-ai names
    (``openai:gpt-4o-mini``, ``anthropic:claude-sonnet-4-0``, ...).  *models*
    maps a name to a pre-built ``Model`` instance, which takes precedence over
    pydantic-ai's name inference (used for custom providers and in tests).
    """

    def __init__(self, models: Mapping[str, Model] | None = None) -> None:
        self._models = dict(models or {})

    async def chat(self, model: str, messages: Sequence[PromptPart], options: AgentOptions) -> AiResponse:
        model_messages = build_messages(messages)
        if not model_messages or not isinstance(model_messages[-1], ModelRequest):
            raise ChatError(model, "the last prompt part must be an instruction or system part")

        target: Model | str = self._models.get(model, model)
        try:
            response = await model_request(
                target,
                model_messages,
                model_settings=options.to_model_settings(),
            )
        except _CHAT_FAILURES as err:
            raise ChatError(model, err) from err

        ai_response = to_ai_response(response, model)
        logger.debug(
            "AI response from {}: input_tokens={}, output_tokens={}",
            ai_response.model_name,
            ai_response.usage.input_tokens,
            ai_response.usage.output_tokens,
        )
        return ai_response
