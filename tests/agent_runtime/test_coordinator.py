"""Tests for the run coordinator (Before-All, bounded input tasks, After-All).

Scripts run through the real ``PythonScriptEngine``; the AI call is the
``FakeChatClient`` from conftest, whose per-input delays shuffle the
completion order.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from agentloop.agent_runtime.errors import ProtocolError, ScriptError, TaskError
from agentloop.agent_runtime.execution.coordinator import run_command_agent
from agentloop.agent_runtime.models.enums import DryMode, EventType
from agentloop.agent_runtime.models.run import RunCommandResponse, RunOptions

INPUTS = ["one", "two", "three"]
FIVE_INPUTS = ["one", "two", "three", "four", "five"]


# ---------------------------------------------------------------------------
# Ordering and admission control
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("concurrency", [1, 5])
async def test_outputs_follow_input_order(make_agent: Any, services: Any, chat: Any, concurrency: int) -> None:
    # Later inputs finish first when they run concurrently
    chat.delays = {"one": 0.05, "two": 0.04, "three": 0.03, "four": 0.02, "five": 0}
    agent = make_agent(after_all="return outputs", input_concurrency=concurrency)

    result = await run_command_agent(agent, FIVE_INPUTS, services=services)

    assert result.outputs == [f"output for: {value}" for value in FIVE_INPUTS]
    assert result.after_all == result.outputs


async def test_concurrency_one_runs_sequentially(make_agent: Any, services: Any, chat: Any) -> None:
    chat.delays = {"one": 0.02, "two": 0.01}
    agent = make_agent(input_concurrency=1)

    await run_command_agent(agent, INPUTS, services=services)

    assert chat.max_active == 1
    assert [call[1][-1].content for call in chat.calls] == INPUTS


async def test_default_concurrency_is_one(make_agent: Any, services: Any, chat: Any) -> None:
    chat.delays = {"one": 0.01, "two": 0.01, "three": 0.01}
    agent = make_agent()

    await run_command_agent(agent, INPUTS, services=services)

    assert agent.options.input_concurrency is None
    assert chat.max_active == 1


async def test_in_flight_tasks_never_exceed_bound(make_agent: Any, services: Any, chat: Any) -> None:
    inputs = [f"input-{i}" for i in range(6)]
    chat.delays = dict.fromkeys(inputs, 0.02)
    agent = make_agent(input_concurrency=2, after_all="return outputs")

    result = await run_command_agent(agent, inputs, services=services)

    assert chat.max_active == 2
    assert result.outputs == [f"output for: {value}" for value in inputs]


async def test_concurrency_above_input_count(make_agent: Any, services: Any, chat: Any) -> None:
    chat.delays = dict.fromkeys(INPUTS, 0.02)
    agent = make_agent(input_concurrency=10)

    await run_command_agent(agent, INPUTS, services=services)

    assert chat.max_active == 3


# ---------------------------------------------------------------------------
# Input normalization and collection
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("inputs", [None, []])
async def test_no_inputs_runs_once_with_none(make_agent: Any, services: Any, chat: Any, inputs: Any) -> None:
    agent = make_agent(instruction="Review {{ input }}", data="return input", output="return [input, data]")

    result = await run_command_agent(agent, inputs, services=services, return_output_values=True)

    assert [call[1][-1].content for call in chat.calls] == ["Review "]
    assert result.outputs == [[None, None]]


@pytest.mark.parametrize("inputs", [None, []])
async def test_no_inputs_blank_instruction_skips_ai(make_agent: Any, services: Any, chat: Any, inputs: Any) -> None:
    agent = make_agent(instruction="{{ input }}", output="return 'ran'")

    result = await run_command_agent(agent, inputs, services=services, return_output_values=True)

    assert chat.calls == []
    assert result.outputs == ["ran"]


async def test_outputs_not_collected_without_after_all(make_agent: Any, services: Any) -> None:
    agent = make_agent()

    result = await run_command_agent(agent, INPUTS, services=services)

    assert result == RunCommandResponse(outputs=None, after_all=None)


async def test_outputs_collected_on_request(make_agent: Any, services: Any) -> None:
    agent = make_agent()

    result = await run_command_agent(agent, ["a"], services=services, return_output_values=True)

    assert result.outputs == ["output for: a"]
    assert result.after_all is None


async def test_data_skip_leaves_none_slot(make_agent: Any, services: Any, chat: Any) -> None:
    agent = make_agent(
        data='if input == "one":\n    return skip("not this one")\nreturn input',
        after_all="return outputs",
        input_concurrency=3,
    )

    result = await run_command_agent(agent, INPUTS, services=services)

    assert result.outputs == [None, "output for: two", "output for: three"]
    assert len(chat.calls) == 2


async def test_output_skip_leaves_none_slot(make_agent: Any, services: Any) -> None:
    agent = make_agent(
        output='if input == "two":\n    return skip()\nreturn ai_result["content"].upper()',
        after_all="return outputs",
    )

    result = await run_command_agent(agent, INPUTS, services=services)

    assert result.outputs == ["OUTPUT FOR: ONE", None, "OUTPUT FOR: THREE"]


async def test_dry_run_outputs_are_none(make_agent: Any, services: Any, chat: Any) -> None:
    agent = make_agent(after_all="return outputs")

    result = await run_command_agent(agent, INPUTS, RunOptions(dry_mode=DryMode.REQ), services=services)

    assert result.outputs == [None, None, None]
    assert chat.calls == []


# ---------------------------------------------------------------------------
# Before-All
# ---------------------------------------------------------------------------


async def test_before_all_skip_ends_run(make_agent: Any, services: Any, chat: Any, publisher: Any) -> None:
    agent = make_agent(
        before_all='return skip("nothing to do")',
        after_all='raise RuntimeError("must not run")',
    )

    result = await run_command_agent(agent, INPUTS, services=services)

    assert result == RunCommandResponse()
    assert chat.calls == []
    skipped = publisher.of_type(EventType.BEFORE_ALL_SKIPPED)
    assert len(skipped) == 1
    assert "nothing to do" in skipped[0].message
    assert publisher.of_type(EventType.INPUT_STARTED) == []


async def test_before_all_replaces_inputs_and_shares(make_agent: Any, services: Any) -> None:
    agent = make_agent(
        before_all='return before_all_response(inputs=["x", "y"], shared={"prefix": ">"})',
        instruction="{{ shared.prefix }}{{ input }}",
        after_all="return {'inputs': inputs, 'outputs': outputs, 'shared': shared}",
    )

    result = await run_command_agent(agent, INPUTS, services=services)

    assert result.after_all == {
        "inputs": ["x", "y"],
        "outputs": ["output for: >x", "output for: >y"],
        "shared": {"prefix": ">"},
    }


async def test_before_all_none_inputs_keeps_supplied(make_agent: Any, services: Any) -> None:
    agent = make_agent(
        before_all='return before_all_response(shared="s")',
        instruction="{{ input }}/{{ shared }}",
        after_all="return outputs",
    )

    result = await run_command_agent(agent, ["a", "b"], services=services)

    assert result.outputs == ["output for: a/s", "output for: b/s"]


async def test_before_all_empty_inputs_runs_once(make_agent: Any, services: Any, chat: Any) -> None:
    agent = make_agent(
        before_all="return before_all_response(inputs=[])",
        instruction="Item: {{ input }}",
        after_all="return outputs",
    )

    result = await run_command_agent(agent, INPUTS, services=services)

    assert len(chat.calls) == 1
    assert result.outputs == ["output for: Item: "]


async def test_before_all_sees_inputs_and_plain_value_becomes_shared(make_agent: Any, services: Any) -> None:
    agent = make_agent(
        before_all="return {'count': len(inputs), 'agent': CTX['AGENT_NAME']}",
        after_all="return shared",
    )

    result = await run_command_agent(agent, INPUTS, services=services)

    assert result.after_all == {"count": 3, "agent": "test-agent"}


async def test_before_all_unexpected_field_is_protocol_error(make_agent: Any, services: Any, publisher: Any) -> None:
    agent = make_agent(
        before_all=(
            "return {'_agentloop_': {'kind': 'BeforeAllResponse', "
            "'data': {'inputs': ['a'], 'unexpected': 1}}}"
        ),
    )

    with pytest.raises(ProtocolError, match="unexpected"):
        await run_command_agent(agent, INPUTS, services=services)

    assert publisher.of_type(EventType.INPUT_STARTED) == []


async def test_before_all_options_override(make_agent: Any, services: Any, chat: Any) -> None:
    agent = make_agent(
        before_all="return before_all_response(options={'model': 'big', 'temperature': 0.2})",
        model_aliases={"big": "provider:big-model"},
    )

    await run_command_agent(agent, ["a"], services=services)

    model, _, options = chat.calls[0]
    assert model == "provider:big-model"
    assert options.temperature == 0.2
    # The caller's agent is unchanged
    assert agent.options.model == "test-model"


async def test_before_all_options_override_concurrency(make_agent: Any, services: Any, chat: Any) -> None:
    chat.delays = dict.fromkeys(INPUTS, 0.02)
    agent = make_agent(before_all="return before_all_response(options={'input_concurrency': 3})")

    await run_command_agent(agent, INPUTS, services=services)

    assert chat.max_active == 3


async def test_before_all_invalid_options_is_protocol_error(make_agent: Any, services: Any, chat: Any) -> None:
    agent = make_agent(before_all="return before_all_response(options={'bogus': True})")

    with pytest.raises(ProtocolError, match="options"):
        await run_command_agent(agent, INPUTS, services=services)

    assert chat.calls == []


async def test_before_all_shared_must_be_copyable(make_agent: Any, services: Any, chat: Any, publisher: Any) -> None:
    agent = make_agent(before_all="import threading\nreturn {'lock': threading.Lock()}")

    with pytest.raises(ProtocolError, match="shared value must be plain data"):
        await run_command_agent(agent, INPUTS, services=services)

    assert chat.calls == []
    assert publisher.of_type(EventType.INPUT_STARTED) == []


async def test_before_all_inputs_must_be_copyable(make_agent: Any, services: Any, chat: Any) -> None:
    agent = make_agent(before_all="import threading\nreturn before_all_response(inputs=['a', threading.Lock()])")

    with pytest.raises(ProtocolError, match="inputs must be plain data"):
        await run_command_agent(agent, INPUTS, services=services)

    assert chat.calls == []


async def test_before_all_script_error(make_agent: Any, services: Any) -> None:
    agent = make_agent(before_all="return 1 / 0")

    with pytest.raises(ScriptError, match="Before All"):
        await run_command_agent(agent, INPUTS, services=services)


# ---------------------------------------------------------------------------
# Isolation between inputs
# ---------------------------------------------------------------------------


async def test_shared_value_is_copied_per_input(make_agent: Any, services: Any) -> None:
    agent = make_agent(
        instruction=None,
        before_all="return {'seen': []}",
        data="shared['seen'].append(input)\nreturn len(shared['seen'])",
        output="return data",
        after_all="return {'outputs': outputs, 'shared': shared}",
        input_concurrency=2,
    )

    result = await run_command_agent(agent, INPUTS, services=services)

    assert result.after_all == {"outputs": [1, 1, 1], "shared": {"seen": []}}


async def test_script_globals_do_not_leak(make_agent: Any, services: Any) -> None:
    agent = make_agent(
        instruction=None,
        data="global counter\ntry:\n    counter += 1\nexcept NameError:\n    counter = 1\nreturn counter",
        output="return data",
        after_all="return outputs",
    )

    result = await run_command_agent(agent, INPUTS, services=services)

    assert result.outputs == [1, 1, 1]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


async def test_first_error_aborts_remaining_inputs(make_agent: Any, services: Any, chat: Any) -> None:
    agent = make_agent(
        data='if input == "bad":\n    raise ValueError("boom")\nreturn input',
        after_all='raise RuntimeError("must not run")',
        input_concurrency=1,
    )

    with pytest.raises(ScriptError, match="boom"):
        await run_command_agent(agent, ["a", "bad", "c"], services=services)

    assert [call[1][-1].content for call in chat.calls] == ["a"]


async def test_error_cancels_in_flight_inputs(make_agent: Any, services: Any, publisher: Any) -> None:
    services.chat_client.delays = {"slow": 5}
    agent = make_agent(data='if input == "bad":\n    raise ValueError("boom")\nreturn input', input_concurrency=2)

    with pytest.raises(ScriptError):
        await run_command_agent(agent, ["slow", "bad"], services=services)
    await asyncio.sleep(0.01)

    assert publisher.of_type(EventType.INPUT_COMPLETED) == []
    assert publisher.of_type(EventType.RUN_COMPLETED) == []


async def test_unexpected_error_is_wrapped(make_agent: Any, services: Any, chat: Any) -> None:
    def explode(text: str) -> str:
        raise RuntimeError(f"chat broke on {text}")

    chat.reply = explode
    agent = make_agent()

    with pytest.raises(TaskError) as exc_info:
        await run_command_agent(agent, ["a"], services=services)

    assert exc_info.value.input_index == 0
    assert isinstance(exc_info.value.cause, RuntimeError)


async def test_after_all_error(make_agent: Any, services: Any) -> None:
    agent = make_agent(after_all="return outputs[10]")

    with pytest.raises(ScriptError, match="After All"):
        await run_command_agent(agent, INPUTS, services=services)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


async def test_progress_events(make_agent: Any, services: Any, publisher: Any) -> None:
    agent = make_agent(temperature=0.5)

    await run_command_agent(agent, [{"path": "docs/a.md"}, "b"], services=services)

    started = publisher.of_type(EventType.RUN_STARTED)
    assert len(started) == 1
    assert "test-agent" in started[0].message
    assert "temperature: 0.5" in started[0].message

    done = publisher.of_type(EventType.INPUT_COMPLETED)
    assert sorted(e.message for e in done) == ["DONE (input: docs/a.md)", "DONE (input: input index: 1)"]
    assert len(publisher.of_type(EventType.OUTPUT_PREVIEW)) == 2
    assert len(publisher.of_type(EventType.RUN_COMPLETED)) == 1


async def test_output_preview_is_truncated(make_agent: Any, services: Any, chat: Any, publisher: Any) -> None:
    chat.reply = lambda text: "x" * 200
    agent = make_agent()

    await run_command_agent(agent, ["a"], services=services)

    (preview,) = publisher.of_type(EventType.OUTPUT_PREVIEW)
    assert preview.message == f"-> Agent Output: {'x' * 72}..."
