"""Read-only path/name context exposed to every hook as ``CTX``."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentloop.agent_runtime.models.agent import Agent

AGENTLOOP_DIR_NAME = ".agentloop"


@dataclass(frozen=True, slots=True)
class Literals:
    """Path literals built once per run and shared by all stages."""

    workspace_dir: str
    agentloop_dir: str
    agent_name: str
    agent_file_path: str
    agent_file_dir: str
    agent_file_name: str
    agent_file_stem: str

    @classmethod
    def from_context(cls, workspace_dir: str | Path, agent: Agent) -> Literals:
        """Build literals from the workspace root and the agent's file path.

        A relative agent path is taken relative to the workspace.
        """
        workspace = Path(workspace_dir).expanduser().resolve()
        agent_path = Path(agent.file_path).expanduser()
        if not agent_path.is_absolute():
            agent_path = workspace / agent_path
        agent_path = agent_path.resolve()

        return cls(
            workspace_dir=workspace.as_posix(),
            agentloop_dir=(workspace / AGENTLOOP_DIR_NAME).as_posix(),
            agent_name=agent.name,
            agent_file_path=agent_path.as_posix(),
            agent_file_dir=agent_path.parent.as_posix(),
            agent_file_name=agent_path.name,
            agent_file_stem=agent_path.stem,
        )

    def to_ctx(self) -> dict[str, str]:
        """Fresh ``CTX`` mapping (a new dict per call, so hooks cannot share it)."""
        return {
            "WORKSPACE_DIR": self.workspace_dir,
            "AGENTLOOP_DIR": self.agentloop_dir,
            "AGENT_NAME": self.agent_name,
            "AGENT_FILE_PATH": self.agent_file_path,
            "AGENT_FILE_DIR": self.agent_file_dir,
            "AGENT_FILE_NAME": self.agent_file_name,
            "AGENT_FILE_STEM": self.agent_file_stem,
        }
