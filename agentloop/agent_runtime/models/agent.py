"""Agent definition models.

An ``Agent`` is built once per run from its markdown file and never mutated.
A Before-All options override produces a new ``Agent`` through
:meth:`Agent.with_options`; tasks spawned afterwards receive that value.
"""

from __future__ import annotations

from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field

from agentloop.agent_runtime.models.enums import PartKind
from agentloop.agent_runtime.models.options import AgentOptions


class PromptPart(BaseModel):
    """One instruction template, tagged with the chat role it is sent as."""

    model_config = ConfigDict(frozen=True)

    kind: PartKind = PartKind.INSTRUCTION
    content: str


class Agent(BaseModel):
    """Immutable agent definition shared by every task of a run."""

    model_config = ConfigDict(frozen=True)

    name: str
    file_path: str
    prompt_parts: tuple[PromptPart, ...] = ()

    before_all_script: str | None = None
    data_script: str | None = None
    output_script: str | None = None
    after_all_script: str | None = None

    options: AgentOptions = Field(default_factory=AgentOptions)

    # -- Path helpers ----------------------------------------------------------

    @property
    def file_name(self) -> str:
        return PurePath(self.file_path).name

    @property
    def file_stem(self) -> str:
        return PurePath(self.file_path).stem

    @property
    def file_dir(self) -> str:
        return PurePath(self.file_path).parent.as_posix()

    # -- Options ---------------------------------------------------------------

    @property
    def model_name(self) -> str | None:
        """Resolved model name (aliases applied)."""
        return self.options.resolve_model()

    def with_options(self, override: AgentOptions | None) -> Agent:
        """Return a copy with *override* merged over the current options."""
        if override is None:
            return self
        return self.model_copy(update={"options": self.options.merge(override)})
