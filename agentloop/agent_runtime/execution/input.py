"""Input list construction for command runs.

Inputs are either plain strings (``--on-inputs``) or files matched by glob
patterns (``--on-files``), which become :class:`FileMeta` mappings so that
hook scripts can read ``input["path"]``, ``input["name"]``, etc.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from agentloop.agent_runtime.models.run import FileMeta

_LABEL_KEYS = ("path", "name", "label", "_label")


def normalize_file_glob(pattern: str) -> str:
    """Widen a bare file name into a recursive glob.

    ``main.rs`` becomes ``**/main.rs``; patterns with a wildcard or an
    explicit ``./``/``/`` prefix are left alone.
    """
    if "*" in pattern or pattern.startswith(("./", "/")):
        return pattern
    return f"**/{pattern}"


def find_file_inputs(patterns: Sequence[str], base_dir: str | Path) -> list[dict[str, Any]]:
    """Expand glob patterns under *base_dir* into sorted, de-duplicated file inputs.

    Paths are reported relative to *base_dir* when they are inside it.
    """
    base = Path(base_dir)
    seen: set[Path] = set()
    found: list[Path] = []

    for raw in patterns:
        pattern = normalize_file_glob(raw)
        if pattern.startswith("/"):
            root, pattern = Path("/"), pattern.lstrip("/")
        else:
            root, pattern = base, pattern.removeprefix("./")
        for path in root.glob(pattern):
            if path.is_file() and path not in seen:
                seen.add(path)
                found.append(path)

    inputs = []
    for path in sorted(found):
        display = path.relative_to(base) if path.is_relative_to(base) else path
        inputs.append(FileMeta.from_path(display).model_dump())
    return inputs


def build_inputs(
    on_inputs: Sequence[str] | None = None,
    on_files: Sequence[str] | None = None,
    *,
    base_dir: str | Path = ".",
) -> list[Any] | None:
    """Build the run's input list.  ``None`` means "no inputs supplied".

    Raises ``ValueError`` when both sources are given.
    """
    if on_inputs and on_files:
        raise ValueError("Cannot use both --on-inputs and --on-files")
    if on_inputs:
        return list(on_inputs)
    if on_files:
        return find_file_inputs(on_files, base_dir)
    return None


def input_label(value: Any, index: int) -> str:
    """Human label for progress events: the first string ``path``/``name``/``label`` key."""
    if isinstance(value, dict):
        for key in _LABEL_KEYS:
            label = value.get(key)
            if isinstance(label, str):
                return label
    return f"input index: {index}"
