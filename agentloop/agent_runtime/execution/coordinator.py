"""Run coordinator -- orchestrates Before-All, the input tasks and After-All.

The coordinator manages the full lifecycle of one command run:

1. **Before-All**: run once; it may skip the whole run or return a
   ``BeforeAllResponse`` replacing the inputs, sharing a value with every
   stage and overriding the agent options.
2. **Inputs**: one task per input, spawned in input order with at most
   ``input_concurrency`` in flight.  At the bound, the coordinator waits for
   a completion before spawning the next task.
3. **After-All**: run once with the outputs sorted back into input order.

Completion order is unconstrained; collected outputs are re-sorted by input
index, which is the only ordering guarantee.  Only the draining loop writes
the output accumulator, so no lock is needed.

The first task failure aborts the run.  Tasks still in flight are cancelled
but not awaited: a hook already executing in a worker thread runs to its
end, and no later stage of that input starts.  No partial output is
returned.

The caller is responsible for:

- Loading the Agent (``resolver.load_agent``) and building the inputs
- Owning the publisher lifecycle (``QueuePublisher`` context manager)
- Presenting results and errors, and re-running in watch mode
"""

from __future__ import annotations

import asyncio
import copy
from operator import itemgetter
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from agentloop.agent_runtime.errors import AgentLoopError, ProtocolError, TaskError
from agentloop.agent_runtime.execution.input import input_label
from agentloop.agent_runtime.execution.resolver import apply_options_override
from agentloop.agent_runtime.execution.services import RunServices
from agentloop.agent_runtime.execution.stages import run_agent_input, truncate_with_ellipsis
from agentloop.agent_runtime.literals import Literals
from agentloop.agent_runtime.models.enums import EventType, Stage
from agentloop.agent_runtime.models.events import RunEvent
from agentloop.agent_runtime.models.run import (
    Completed,
    RunCommandResponse,
    RunOptions,
    StageResult,
    stage_result_value,
)
from agentloop.agent_runtime.protocol import BeforeAllResponse, Passthrough, Skip, parse_directive

if TYPE_CHECKING:
    from collections.abc import Sequence

    from agentloop.agent_runtime.models.agent import Agent

type InputTask = asyncio.Task[tuple[int, StageResult]]


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


async def run_command_agent(
    agent: Agent,
    inputs: Sequence[Any] | None,
    run_options: RunOptions | None = None,
    *,
    services: RunServices | None = None,
    workspace_dir: str | Path = ".",
    return_output_values: bool = False,
) -> RunCommandResponse:
    """Run *agent* over *inputs*.

    Parameters
    ----------
    agent:
        Loaded agent with its config-file and agent-file options resolved.
    inputs:
        Input values.  ``None`` or an empty list runs the agent once with a
        ``None`` input.  Inputs and the Before-All ``shared`` value must be
        plain data (JSON-like): every task receives its own deep copy.
    run_options:
        Verbose flag and dry-run mode.
    services:
        Script engine, chat client and publisher.  Defaults to the Python
        script engine, the pydantic-ai client and no event publishing.
    workspace_dir:
        Workspace root used to build the ``CTX`` literals.
    return_output_values:
        Collect outputs even when the agent has no After-All script.

    Returns
    -------
    RunCommandResponse
        Ordered outputs (when collected) and the After-All return value.
        Empty when Before-All skipped the run.

    Raises
    ------
    AgentLoopError:
        The first failure observed (``ScriptError``, ``ProtocolError``,
        ``ChatError``, ``RenderError``, ``TaskError``).
        ``ProtocolError`` is also raised, before any input runs, when the
        inputs or the shared value cannot be copied.
    """
    run_options = run_options or RunOptions()
    services = services or RunServices()
    publisher = services.publisher

    publisher.publish(RunEvent(event_type=EventType.RUN_STARTED, message=_run_info(agent)))

    literals = Literals.from_context(workspace_dir, agent)

    # -- Before All ------------------------------------------------------------
    shared: Any = None
    if agent.before_all_script is not None:
        value = await services.script_engine.evaluate(
            agent.before_all_script,
            {"inputs": list(inputs) if inputs is not None else None, "CTX": literals.to_ctx()},
            stage=Stage.BEFORE_ALL,
        )
        match parse_directive(value):
            case Skip(reason=reason):
                reason_msg = f" (Reason: {reason})" if reason else ""
                publisher.publish(
                    RunEvent(
                        event_type=EventType.BEFORE_ALL_SKIPPED,
                        message=f"Skip inputs at Before All section{reason_msg}",
                    )
                )
                return RunCommandResponse()
            case BeforeAllResponse(inputs=inputs_override, shared=shared_value, options=options_override):
                if inputs_override is not None:
                    inputs = inputs_override
                shared = shared_value
                agent = apply_options_override(agent, options_override)
            case Passthrough(value=shared_value):
                shared = shared_value

    # -- Inputs ----------------------------------------------------------------
    run_inputs: list[Any] = list(inputs) if inputs else [None]
    _ensure_plain_data(run_inputs, "inputs")
    _ensure_plain_data(shared, "Before All shared value")
    collect = agent.after_all_script is not None or return_output_values

    outputs = await _run_inputs(
        agent,
        run_inputs,
        shared=shared,
        literals=literals,
        run_options=run_options,
        services=services,
        collect=collect,
    )

    # -- After All -------------------------------------------------------------
    after_all: Any = None
    if agent.after_all_script is not None:
        after_all = await services.script_engine.evaluate(
            agent.after_all_script,
            {"inputs": run_inputs, "outputs": outputs, "shared": shared, "CTX": literals.to_ctx()},
            stage=Stage.AFTER_ALL,
        )

    publisher.publish(
        RunEvent(
            event_type=EventType.RUN_COMPLETED,
            message=f"Agent {agent.name} completed ({len(run_inputs)} inputs)",
        )
    )
    return RunCommandResponse(outputs=outputs, after_all=after_all)


# ---------------------------------------------------------------------------
# Input tasks
# ---------------------------------------------------------------------------


async def _run_inputs(
    agent: Agent,
    inputs: list[Any],
    *,
    shared: Any,
    literals: Literals,
    run_options: RunOptions,
    services: RunServices,
    collect: bool,
) -> list[Any] | None:
    """Spawn bounded input tasks and return ordered outputs (or None if not collected)."""
    concurrency = agent.options.effective_concurrency
    captured: list[tuple[int, StageResult]] | None = [] if collect else None
    in_flight: set[InputTask] = set()

    logger.debug("Running {} inputs with concurrency {}", len(inputs), concurrency)

    try:
        for index, value in enumerate(inputs):
            task = asyncio.create_task(
                run_command_input(
                    agent,
                    value,
                    index=index,
                    shared=shared,
                    literals=literals,
                    run_options=run_options,
                    services=services,
                ),
                name=f"agentloop-input-{index}",
            )
            in_flight.add(task)

            if len(in_flight) >= concurrency:
                in_flight = await _drain_completed(in_flight, captured)

        while in_flight:
            in_flight = await _drain_completed(in_flight, captured)
    except BaseException:
        _abandon(in_flight)
        raise

    if captured is None:
        return None
    captured.sort(key=itemgetter(0))
    return [stage_result_value(result) for _, result in captured]


async def _drain_completed(
    in_flight: set[InputTask],
    captured: list[tuple[int, StageResult]] | None,
) -> set[InputTask]:
    """Wait for at least one task to finish; record results, raise the first error.

    Returns the tasks still pending.
    """
    done, pending = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)

    error: BaseException | None = None
    for task in done:
        # .exception() also marks the failure as retrieved for the tasks we do not re-raise
        exc = task.exception()
        if exc is not None:
            error = error or exc
        elif captured is not None:
            captured.append(task.result())

    if error is not None:
        _abandon(pending)
        raise error
    return pending


def _abandon(tasks: set[InputTask]) -> None:
    for task in tasks:
        if not task.done():
            task.cancel()


async def run_command_input(
    agent: Agent,
    input_value: Any,
    *,
    index: int,
    shared: Any,
    literals: Literals,
    run_options: RunOptions,
    services: RunServices,
) -> tuple[int, StageResult]:
    """One input task: label, progress events, stage pipeline.

    ``input_value`` and ``shared`` are deep-copied so scripts of one input
    cannot change what another input sees.  Unexpected (non-domain)
    exceptions are wrapped in ``TaskError``.
    """
    label = input_label(input_value, index)
    publisher = services.publisher
    publisher.publish(
        RunEvent(event_type=EventType.INPUT_STARTED, message=f"Running input: {label}", input_index=index, label=label)
    )

    try:
        result = await run_agent_input(
            agent,
            copy.deepcopy(input_value),
            index=index,
            label=label,
            shared=copy.deepcopy(shared),
            literals=literals,
            run_options=run_options,
            services=services,
        )
    except AgentLoopError:
        raise
    except Exception as err:
        raise TaskError(index, err) from err

    if isinstance(result, Completed) and isinstance(result.value, str):
        publisher.publish(
            RunEvent(
                event_type=EventType.OUTPUT_PREVIEW,
                message=f"-> Agent Output: {truncate_with_ellipsis(result.value)}",
                input_index=index,
                label=label,
            )
        )
    publisher.publish(
        RunEvent(event_type=EventType.INPUT_COMPLETED, message=f"DONE (input: {label})", input_index=index, label=label)
    )
    return index, result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ensure_plain_data(value: Any, what: str) -> None:
    """Fail once, before any task spawns, if *value* cannot be copied into each task."""
    try:
        copy.deepcopy(value)
    except (TypeError, copy.Error) as err:
        raise ProtocolError(f"{what} must be plain data (it is copied into every input task): {err}") from err


def _run_info(agent: Agent) -> str:
    info = ""
    if agent.options.temperature is not None:
        info = f" (temperature: {agent.options.temperature})"
    return (
        f"Running agent command: {agent.name}\n"
        f"                 from: {agent.file_path}\n"
        f"           with model: {agent.model_name}{info}"
    )
