"""Run-level data models: options, AI responses, stage results, responses."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agentloop.agent_runtime.models.enums import DryMode

# -- Run options -------------------------------------------------------------


class RunOptions(BaseModel):
    """Caller-supplied options for one run.

    Watch / open-on-change are caller concerns: a caller loop re-invokes the
    run instead of the runtime doing it.
    """

    model_config = ConfigDict(frozen=True)

    verbose: bool = False
    dry_mode: DryMode = DryMode.NONE


# -- AI response -------------------------------------------------------------


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class AiResponse(BaseModel):
    """Result of one AI call, exposed to the Output script as ``ai_result``."""

    content: str | None = None
    model_name: str
    usage: Usage = Field(default_factory=Usage)


# -- Stage results -----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Skipped:
    """The input was skipped (directive or dry run); its output slot is ``None``."""

    reason: str | None = None


@dataclass(frozen=True, slots=True)
class Completed:
    value: Any = None


type StageResult = Skipped | Completed


def stage_result_value(result: StageResult) -> Any:
    """Map a stage result to its output slot value."""
    match result:
        case Skipped():
            return None
        case Completed(value=value):
            return value


# -- Inputs ------------------------------------------------------------------


class FileMeta(BaseModel):
    """A file input, as passed to scripts (``input["path"]`` etc.)."""

    path: str
    name: str
    stem: str
    ext: str

    @classmethod
    def from_path(cls, path: str | Path) -> FileMeta:
        p = Path(path)
        return cls(path=p.as_posix(), name=p.name, stem=p.stem, ext=p.suffix.lstrip("."))


# -- Response ----------------------------------------------------------------


class RunCommandResponse(BaseModel):
    """Outcome of a command run.

    ``outputs`` is only collected when the agent has an After-All script or
    the caller asked for it; it is ordered by original input index.
    """

    outputs: list[Any] | None = None
    after_all: Any = None
