"""Domain exceptions raised by the agent runtime.

Every failure is fatal for the run: nothing is retried and nothing is
downgraded to a per-input soft failure.  A ``Skip`` directive is a
successful outcome and never surfaces here.
"""

from __future__ import annotations


class AgentLoopError(Exception):
    """Base class for all agent runtime errors."""


class ScriptError(AgentLoopError):
    """A hook script (Before-All, Data, Output, After-All) failed to evaluate."""

    def __init__(self, stage: str, cause: BaseException | str) -> None:
        self.stage = stage
        self.cause = cause
        if isinstance(cause, BaseException):
            detail = f"{type(cause).__name__}: {cause}"
        else:
            detail = cause
        super().__init__(f"{stage} script failed: {detail}")


class ProtocolError(AgentLoopError):
    """A script returned a malformed directive, or one not legal at its stage."""


class ChatError(AgentLoopError):
    """The AI call failed (network, auth, unknown model) or could not be made."""

    def __init__(self, model: str | None, cause: BaseException | str) -> None:
        self.model = model
        self.cause = cause
        super().__init__(f"AI call to '{model}' failed: {cause}" if model else f"AI call failed: {cause}")


class TaskError(AgentLoopError):
    """A per-input task failed with an unexpected (non-domain) exception."""

    def __init__(self, input_index: int, cause: BaseException) -> None:
        self.input_index = input_index
        self.cause = cause
        super().__init__(f"Error while running input {input_index}. Cause: {type(cause).__name__}: {cause}")


class ConfigError(AgentLoopError):
    """Options could not be loaded from the config file or an agent file."""


class AgentDocError(AgentLoopError):
    """The agent markdown file could not be read or is malformed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"Invalid agent file '{path}': {reason}")


class RenderError(AgentLoopError):
    """An instruction template failed to compile or render."""
