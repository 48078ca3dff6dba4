"""Per-input stage executor.

Runs one input through four strictly ordered stages, each able to stop the
pipeline early:

1. **Data** -- evaluate the Data script (``input``, ``shared``, ``CTX``).
   ``skip()`` ends the input here.
2. **Instruction** -- render every prompt part with Jinja2; blank parts are
   dropped.  ``DryMode.REQ`` stops here.
3. **AI call** -- one chat request when at least one part remains.
   ``DryMode.RES`` stops here.
4. **Output** -- evaluate the Output script (``input``, ``data``, ``shared``,
   ``ai_result``, ``CTX``); without one, the AI text is the output.

Any script, render or chat failure propagates unchanged; nothing is retried.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from agentloop.agent_runtime.errors import ChatError
from agentloop.agent_runtime.execution.prompt import render_prompt_parts
from agentloop.agent_runtime.models.enums import DryMode, EventType, Stage
from agentloop.agent_runtime.models.events import RunEvent
from agentloop.agent_runtime.models.run import Completed, Skipped, StageResult
from agentloop.agent_runtime.protocol import Passthrough, Skip, expect_stage_directive

if TYPE_CHECKING:
    from agentloop.agent_runtime.execution.services import RunServices
    from agentloop.agent_runtime.literals import Literals
    from agentloop.agent_runtime.models.agent import Agent
    from agentloop.agent_runtime.models.run import AiResponse, RunOptions

OUTPUT_PREVIEW_WIDTH = 72


async def run_agent_input(
    agent: Agent,
    input_value: Any,
    *,
    index: int,
    label: str,
    shared: Any,
    literals: Literals,
    run_options: RunOptions,
    services: RunServices,
) -> StageResult:
    """Run the Data -> Instruction -> AI -> Output pipeline for one input.

    Parameters
    ----------
    agent:
        Agent with its final (post Before-All) options.
    input_value:
        The input, already copied for this task.
    index, label:
        Position in the normalized input list and its display label (events only).
    shared:
        Value shared by the Before-All script (``None`` without one).
    literals:
        Path literals exposed as ``CTX``.
    run_options:
        Verbose flag and dry-run mode.
    services:
        Script engine, chat client and publisher.

    Returns
    -------
    StageResult
        ``Skipped`` when a script skipped the input or a dry run stopped it,
        ``Completed`` otherwise.
    """

    def publish(event_type: EventType, message: str) -> None:
        services.publisher.publish(RunEvent(event_type=event_type, message=message, input_index=index, label=label))

    # -- 1. Data -----------------------------------------------------------------
    data: Any = None
    if agent.data_script is not None:
        value = await services.script_engine.evaluate(
            agent.data_script,
            {"input": input_value, "shared": shared, "CTX": literals.to_ctx()},
            stage=Stage.DATA,
        )
        match expect_stage_directive(value, Stage.DATA):
            case Skip(reason=reason):
                publish(EventType.INPUT_SKIPPED, f"Skip input at Data stage{_reason_suffix(reason)}")
                return Skipped(reason)
            case Passthrough(value=data):
                pass

    # -- 2. Instruction ------------------------------------------------------------
    parts = render_prompt_parts(
        agent.prompt_parts,
        {"data": data, "input": input_value, "shared": shared, "CTX": literals.to_ctx()},
    )
    if run_options.verbose:
        rendered = "\n\n".join(f"[{part.kind}]\n{part.content}" for part in parts)
        publish(EventType.INSTRUCTION_RENDERED, f"Instruction:\n\n{rendered}\n")

    if run_options.dry_mode == DryMode.REQ:
        return Skipped("dry mode: req")

    # -- 3. AI call ----------------------------------------------------------------
    ai_result: AiResponse | None = None
    if parts:
        model = agent.model_name
        if model is None:
            raise ChatError(None, f"agent '{agent.name}' has no model (set 'model' in the options)")
        publish(EventType.AI_REQUEST_SENT, f"Sending rendered instruction to {model} ...")
        ai_result = await services.chat_client.chat(model, parts, agent.options)
        publish(EventType.AI_RESPONSE_RECEIVED, "AI response received")
        if run_options.verbose:
            publish(EventType.AI_RESPONSE_RECEIVED, f"AI Output (model: {ai_result.model_name})\n\n{ai_result.content}\n")
    else:
        publish(EventType.NO_INSTRUCTION, "No instruction, skipping AI call")

    if run_options.dry_mode == DryMode.RES:
        return Skipped("dry mode: res")

    # -- 4. Output -----------------------------------------------------------------
    if agent.output_script is None:
        return Completed(ai_result.content if ai_result is not None else None)

    value = await services.script_engine.evaluate(
        agent.output_script,
        {
            "input": input_value,
            "data": data,
            "shared": shared,
            "ai_result": ai_result.model_dump() if ai_result is not None else None,
            "CTX": literals.to_ctx(),
        },
        stage=Stage.OUTPUT,
    )
    match expect_stage_directive(value, Stage.OUTPUT):
        case Skip(reason=reason):
            publish(EventType.INPUT_SKIPPED, f"Skip input at Output stage{_reason_suffix(reason)}")
            return Skipped(reason)
        case Passthrough(value=output):
            return Completed(output)


def truncate_with_ellipsis(text: str, width: int = OUTPUT_PREVIEW_WIDTH) -> str:
    if len(text) <= width:
        return text
    return f"{text[:width]}..."


def _reason_suffix(reason: str | None) -> str:
    return f" (Reason: {reason})" if reason else ""
