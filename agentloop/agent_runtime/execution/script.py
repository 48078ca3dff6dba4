"""Hook script evaluation.

Hook bodies (``# Before All``, ``# Data``, ``# Output``, ``# After All``) are
Python function bodies.  The scope keys become keyword-only parameters and
the ``return`` value is the hook result::

    # Data
    ```python
    if input == "skip-me":
        return skip("not needed")
    return {"name": input.upper()}
    ```

Every evaluation runs in a fresh namespace, so nothing a script assigns
survives to the next input.  Evaluation runs in the anyio worker-thread
pool; synchronous I/O inside a hook does not stall the other inputs.
"""

from __future__ import annotations

import ast
import builtins
import json
from collections.abc import Mapping
from functools import lru_cache, partial
from types import CodeType
from typing import Any, Protocol, runtime_checkable

from anyio import to_thread

from agentloop.agent_runtime.errors import ScriptError
from agentloop.agent_runtime.protocol import before_all_response, skip

_HOOK_NAME = "__agentloop_hook__"

DEFAULT_HELPERS: dict[str, Any] = {
    "skip": skip,
    "before_all_response": before_all_response,
    "json": json,
}
"""Names pre-bound in every hook namespace."""


@runtime_checkable
class ScriptEngine(Protocol):
    """Evaluates a hook script against a flat scope mapping."""

    async def evaluate(self, script: str, scope: Mapping[str, Any], *, stage: str) -> Any:
        """Return the script's value.  Raises ``ScriptError`` on any failure."""
        ...


class PythonScriptEngine:
    """Evaluate hook bodies as Python functions in worker threads."""

    def __init__(self, helpers: Mapping[str, Any] | None = None) -> None:
        self._helpers = {**DEFAULT_HELPERS, **(helpers or {})}

    async def evaluate(self, script: str, scope: Mapping[str, Any], *, stage: str) -> Any:
        return await to_thread.run_sync(partial(self.evaluate_sync, script, dict(scope), stage=stage))

    def evaluate_sync(self, script: str, scope: dict[str, Any], *, stage: str) -> Any:
        params = tuple(scope)
        for name in params:
            if not name.isidentifier():
                raise ScriptError(stage, f"scope key '{name}' is not a valid identifier")

        try:
            code = _compile_hook(script, params, f"<{stage} script>")
        except SyntaxError as err:
            raise ScriptError(stage, err) from err

        namespace: dict[str, Any] = {"__builtins__": builtins, "__name__": "agentloop_hook", **self._helpers}
        exec(code, namespace)  # noqa: S102
        hook = namespace[_HOOK_NAME]

        try:
            return hook(**scope)
        except Exception as err:
            raise ScriptError(stage, err) from err


@lru_cache(maxsize=256)
def _compile_hook(script: str, params: tuple[str, ...], filename: str) -> CodeType:
    """Wrap the script body in ``def __agentloop_hook__(*, <params>)`` and compile it.

    Line numbers of the original script are kept so tracebacks point at the
    agent file's code block lines.
    """
    module = ast.parse(script, filename=filename)
    hook = ast.FunctionDef(
        name=_HOOK_NAME,
        args=ast.arguments(
            posonlyargs=[],
            args=[],
            vararg=None,
            kwonlyargs=[ast.arg(arg=name) for name in params],
            kw_defaults=[None] * len(params),
            kwarg=None,
            defaults=[],
        ),
        body=module.body or [ast.Pass()],
        decorator_list=[],
        returns=None,
        type_params=[],
    )
    wrapper = ast.Module(body=[hook], type_ignores=[])
    ast.fix_missing_locations(wrapper)
    return compile(wrapper, filename, "exec")
