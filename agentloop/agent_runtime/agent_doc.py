"""Agent markdown document parsing.

An agent file is plain markdown where level-1 headings select sections::

    # Options
    ```toml
    model = "small"
    input_concurrency = 4
    ```

    # Data
    ```python
    return {"path": input["path"], "content": open(input["path"]).read()}
    ```

    # System
    You are a careful proofreader.

    # Instruction
    Fix the typos in the following file, {{ data.path }}:

    {{ data.content }}

    # Output
    ```python
    return ai_result["content"].strip()
    ```

Hook sections (``Before All``, ``Data``, ``Output``, ``After All``) take the
first ``python`` code block; ``Options`` takes the first ``toml`` block;
prompt sections (``Instruction``, ``System``, ``Assistant``) keep every line
up to the next section, code fences included.  Headings inside fenced code
blocks are content, not sections.  Unknown headings end the current section.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from agentloop.agent_runtime.errors import AgentDocError
from agentloop.agent_runtime.models.agent import PromptPart
from agentloop.agent_runtime.models.enums import PartKind

_HEADING_RE = re.compile(r"^#(?!#)\s*(.*?)\s*$")
_FENCE = "```"

_SCRIPT_SECTIONS = {
    "before all": "before_all",
    "data": "data",
    "output": "output",
    "after all": "after_all",
}
_PART_SECTIONS = {
    "instruction": PartKind.INSTRUCTION,
    "inst": PartKind.INSTRUCTION,
    "system": PartKind.SYSTEM,
    "assistant": PartKind.ASSISTANT,
}
_SCRIPT_LANGS = frozenset({"python", "py"})


@dataclass
class AgentDoc:
    """Raw sections extracted from an agent file, before option resolution."""

    path: str
    options_toml: str | None = None
    scripts: dict[str, str] = field(default_factory=dict)
    prompt_parts: list[PromptPart] = field(default_factory=list)

    @property
    def name(self) -> str:
        return Path(self.path).stem

    def script(self, key: str) -> str | None:
        return self.scripts.get(key)


def read_agent_doc(path: str | Path) -> AgentDoc:
    """Read and parse an agent file.  Raises ``AgentDocError`` if unreadable."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as err:
        raise AgentDocError(str(path), f"cannot read file ({err})") from err
    return parse_agent_doc(content, str(path))


def parse_agent_doc(content: str, path: str) -> AgentDoc:
    """Split agent markdown into options, hook scripts and prompt parts."""
    doc = AgentDoc(path=path)

    section: str | None = None
    part_lines: list[str] | None = None
    captured: dict[str, list[str]] = {}
    capturing: list[str] | None = None
    in_fence = False
    fence_line = 0

    for lineno, line in enumerate(content.splitlines(), start=1):
        is_fence = line.startswith(_FENCE)

        # -- Section headings (only outside code blocks) -----------------------
        heading = None if in_fence else _HEADING_RE.match(line)
        if heading is not None:
            _finish_part(doc, section, part_lines)
            section, part_lines = _start_section(heading.group(1).lower())
            continue

        # -- Prompt parts keep every line ------------------------------------
        if part_lines is not None:
            part_lines.append(line)
            if is_fence:
                in_fence = not in_fence
            continue

        # -- Code blocks in hook / options sections --------------------------
        if is_fence:
            if in_fence:
                in_fence = False
                capturing = None
            else:
                in_fence = True
                fence_line = lineno
                capturing = _start_capture(section, line[len(_FENCE) :].strip().lower(), captured)
            continue

        if capturing is not None:
            capturing.append(line)

    if in_fence and capturing is not None:
        raise AgentDocError(path, f"code block opened at line {fence_line} is never closed")

    _finish_part(doc, section, part_lines)

    for key, lines in captured.items():
        body = "\n".join(lines)
        if not body.strip():
            continue
        if key == "options":
            doc.options_toml = body
        else:
            doc.scripts[key] = body

    return doc


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _start_section(header: str) -> tuple[str | None, list[str] | None]:
    if header == "options":
        return "options", None
    if header in _SCRIPT_SECTIONS:
        return _SCRIPT_SECTIONS[header], None
    if header in _PART_SECTIONS:
        return f"part:{_PART_SECTIONS[header]}", []
    return None, None


def _start_capture(section: str | None, lang: str, captured: dict[str, list[str]]) -> list[str] | None:
    """Return the buffer for a code block, or None when the block is not captured.

    Only the first block of the expected language in a section is captured.
    """
    if section is None or section.startswith("part:") or section in captured:
        return None
    expected = {"toml"} if section == "options" else _SCRIPT_LANGS
    if lang not in expected:
        return None
    captured[section] = []
    return captured[section]


def _finish_part(doc: AgentDoc, section: str | None, lines: list[str] | None) -> None:
    if section is None or lines is None:
        return
    kind = PartKind(section.removeprefix("part:"))
    doc.prompt_parts.append(PromptPart(kind=kind, content="\n".join(lines).strip("\n")))
